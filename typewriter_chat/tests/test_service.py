from typewriter_chat.agents.chat_agent import ChatAgent
from typewriter_chat.api import service
from typewriter_chat.providers.openrouter_client import OpenRouterClient


class FakeProvider:
    name = "fake"

    def __init__(self, deltas=("ok",)):
        self._deltas = list(deltas)
        self.credentials = []

    def stream_deltas(self, turns, credential):
        self.credentials.append(credential)
        return iter(self._deltas)

    def send(self, turns, credential, on_delta):
        for d in self.stream_deltas(turns, credential):
            on_delta(d)


def test_default_agent_uses_openrouter(monkeypatch):
    monkeypatch.setattr(service, "_agent", None)
    agent = service.get_default_agent()
    assert isinstance(agent._provider_client, OpenRouterClient)
    assert service.get_default_agent() is agent


def test_run_chat_and_history(monkeypatch):
    provider = FakeProvider()
    agent = ChatAgent(provider, sleep=lambda _: None)
    monkeypatch.setattr(service, "_agent", agent)

    out = service.run_chat("hi", "k-1")
    assert out == {"status": "completed", "content": "ok", "error_code": None, "turns": 2}
    assert provider.credentials == ["k-1"]
    assert service.get_conversation_turns() == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "ok"},
    ]

    service.reset_conversation()
    assert service.get_conversation_turns() == []


def test_abort_chat_from_callback(monkeypatch):
    agent = ChatAgent(FakeProvider(["one ", "two"]), sleep=lambda _: None)
    monkeypatch.setattr(service, "_agent", agent)
    revealed = []

    def on_reveal(chunk, delay_ms):
        revealed.append(chunk)
        service.abort_chat()

    out = service.run_chat("hi", "k", on_reveal=on_reveal)
    assert out["status"] == "aborted"
    assert out["content"] == ""
    assert out["turns"] == 1
    assert len(revealed) == 1
    assert service.get_conversation_turns() == [{"role": "user", "content": "hi"}]


def test_run_chat_reports_invalid_credential(monkeypatch):
    class SettingsStub:
        openrouter_api_key = None

    monkeypatch.setattr(service, "settings", SettingsStub())
    monkeypatch.setattr(service, "_agent", ChatAgent(OpenRouterClient(), sleep=lambda _: None))

    out = service.run_chat("hi")
    assert out["status"] == "failed"
    assert out["error_code"] == "INVALID_CREDENTIAL"
