"""统一的对话与流式展示数据模型。

本模块定义了网络层与节奏调度层之间共享的标准数据结构：

- ConversationTurn: 一条对话消息（system/user/assistant），按顺序原样回放给模型。
- RevealEvent: 调度器产出的一次“显示事件”（文本片段 + 显示前的等待时间）。
- RevealState: 单轮回答的累计文本与已显示长度。
"""

from dataclasses import dataclass
from typing import Literal


# LLM 消息角色类型（与 OpenAI / OpenRouter 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class ConversationTurn:
    """一条对话消息。追加进会话后不再修改。

    - role: 消息角色，如 system/user/assistant。
    - content: 纯文本内容，对模型输出不做任何校验或转换。
    """

    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"unsupported role: {self.role!r}")

    def to_payload(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class RevealEvent:
    """一次显示事件：先等待 delay_ms 毫秒，再把 chunk 追加到界面。"""

    chunk: str
    delay_ms: int


@dataclass
class RevealState:
    """单轮回答的显示进度。

    不变式：revealed_length <= len(accumulated_text)。
    每轮新回答开始时重置为空，回答完成或中止后丢弃。
    """

    accumulated_text: str = ""
    revealed_length: int = 0

    @property
    def backlog(self) -> str:
        """尚未显示的后缀文本。"""

        return self.accumulated_text[self.revealed_length:]

    @property
    def revealed_text(self) -> str:
        return self.accumulated_text[: self.revealed_length]

    @property
    def total_length(self) -> int:
        return len(self.accumulated_text)
