"""对外 API 服务模块。

提供简化的函数接口供上层应用（终端、GUI 等展示层）调用。
"""

from typing import Any, Dict, Optional

from typewriter_chat.config.settings import settings
from typewriter_chat.agents.chat_agent import ChatAgent, OnError, OnReveal
from typewriter_chat.providers.base import OnDelta
from typewriter_chat.providers import create_provider
from typewriter_chat.infrastructure.logging.logger import logger


_agent: Optional[ChatAgent] = None


def get_default_agent() -> ChatAgent:
    """获取默认的 ChatAgent 实例（单例）。"""
    global _agent
    if _agent is None:
        _agent = ChatAgent(create_provider())
    return _agent


def run_chat(
    user_input: str,
    credential: Optional[str] = None,
    *,
    on_delta: Optional[OnDelta] = None,
    on_reveal: Optional[OnReveal] = None,
    on_error: Optional[OnError] = None,
) -> Dict[str, Any]:
    """运行一轮流式对话。

    Args:
        user_input: 用户输入内容
        credential: API Key（可选，不提供则读取配置中的 openrouter_api_key）
        on_delta / on_reveal / on_error: 透传给 ChatAgent.chat 的回调

    Returns:
        包含本轮状态、助手回复、错误码和当前历史长度的字典
    """
    agent = get_default_agent()
    key = credential if credential is not None else (settings.openrouter_api_key or "")
    result = agent.chat(
        user_input,
        key,
        on_delta=on_delta,
        on_reveal=on_reveal,
        on_error=on_error,
    )
    if result.error is not None:
        logger.error(f"Chat failed: {result.error.code}", extra={"extra": {"error": result.error.message}})
    return {
        "status": result.status,
        "content": result.content,
        "error_code": result.error.code if result.error else None,
        "turns": len(agent.turns),
    }


def abort_chat() -> None:
    """中止当前回答（可在回调内部或其他线程调用）。"""
    get_default_agent().abort()


def get_conversation_turns() -> list[Dict[str, Any]]:
    """获取当前会话的所有消息。"""
    return [turn.to_payload() for turn in get_default_agent().turns]


def reset_conversation() -> None:
    get_default_agent().reset()
