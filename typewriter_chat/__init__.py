"""typewriter_chat 顶层包。

该包提供流式 LLM 对话的核心实现：
带超时与重试的 SSE 请求客户端、增量解码，
以及把突发到达的内容按人类阅读节奏逐段显示的调度器。
"""

from typewriter_chat.agents.chat_agent import ChatAgent, TurnResult
from typewriter_chat.domain.models import ConversationTurn, RevealEvent
from typewriter_chat.pacing.scheduler import RevealScheduler
from typewriter_chat.providers.openrouter_client import OpenRouterClient

__all__ = [
    "ChatAgent",
    "ConversationTurn",
    "OpenRouterClient",
    "RevealEvent",
    "RevealScheduler",
    "TurnResult",
]
