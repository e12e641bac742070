"""配置管理模块。

支持从初始化参数、环境变量、.env 以及 config.yaml 加载配置（优先级依次降低）。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("TYPEWRITER_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    openrouter_api_key: Optional[str] = Field(
        default=None,
        description="OpenRouter API 密钥，仅供示例程序读取；核心调用时由调用方显式传入",
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API 基础URL",
    )
    default_model: str = Field(
        default="chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    app_referer: str = Field(
        default="http://localhost",
        description="HTTP-Referer 请求头，用于在 OpenRouter 标识调用来源",
    )
    app_title: str = Field(default="AI-ChatBot", description="X-Title 请求头")

    # ---- 网络与重试 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="单次网络操作（连接/读/写）的超时时间（秒）")
    # TODO: 按期望回复长度放大整体时限，目前所有请求共用固定上限
    request_deadline: float = Field(
        default=120.0,
        ge=1.0,
        description="单次尝试从发出请求到读完响应体的整体时限（秒），持续缓慢到达的响应也会被截断",
    )
    max_attempts: int = Field(default=3, ge=1, le=10, description="最大尝试次数（含首次）")
    backoff_base_ms: int = Field(default=1000, ge=0, description="指数退避基数（毫秒）")
    backoff_max_ms: int = Field(default=8000, ge=0, description="单次退避上限（毫秒）")

    # ---- 打字机节奏 ----
    reveal_base_delay_ms: float = Field(default=20.0, gt=0, description="每个显示片段的基础延迟（毫秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openrouter_api_key")
    @classmethod
    def strip_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
