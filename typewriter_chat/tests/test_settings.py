from typewriter_chat.config.settings import Settings


def test_yaml_config_file(monkeypatch, tmp_path):
    cfg = tmp_path / "custom.yaml"
    cfg.write_text("http_timeout: 12.5\nmax_attempts: 5\napp_title: Demo\n", encoding="utf-8")
    monkeypatch.setenv("TYPEWRITER_CONFIG_FILE", str(cfg))
    monkeypatch.delenv("HTTP_TIMEOUT", raising=False)
    monkeypatch.delenv("MAX_ATTEMPTS", raising=False)
    monkeypatch.delenv("APP_TITLE", raising=False)

    s = Settings()
    assert s.http_timeout == 12.5
    assert s.max_attempts == 5
    assert s.app_title == "Demo"


def test_env_overrides_yaml(monkeypatch, tmp_path):
    cfg = tmp_path / "custom.yaml"
    cfg.write_text("max_attempts: 5\n", encoding="utf-8")
    monkeypatch.setenv("TYPEWRITER_CONFIG_FILE", str(cfg))
    monkeypatch.setenv("MAX_ATTEMPTS", "2")
    assert Settings().max_attempts == 2


def test_blank_api_key_becomes_none(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "   ")
    assert Settings().openrouter_api_key is None
    monkeypatch.setenv("OPENROUTER_API_KEY", " sk-or-1 ")
    assert Settings().openrouter_api_key == "sk-or-1"
