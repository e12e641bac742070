"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- SSE 增量解码 (sse)。
- 提供具体实现 (openrouter_client)。
"""

from typing import Optional

from typewriter_chat.config.settings import settings
from typewriter_chat.providers.base import ProviderClient
from typewriter_chat.providers.openrouter_client import OpenRouterClient


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认 openrouter。"""

    provider_name = (name or "openrouter").lower()
    if provider_name == "openrouter":
        return OpenRouterClient(settings)
    raise KeyError(f"Unknown provider: {name!r}")
