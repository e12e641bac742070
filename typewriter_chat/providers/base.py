"""Provider 抽象接口。

上层 ChatAgent 不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 OpenRouterClient）。
- 负责：把对话历史转成具体 API 请求，并把流式响应解码为按顺序到达的 delta 文本。
"""

from typing import Callable, Iterator, Protocol, Sequence

from typewriter_chat.domain.models import ConversationTurn


OnDelta = Callable[[str], None]


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - stream_deltas: 惰性的 delta 序列，关闭迭代器即取消请求。
    - send: 回调形式，每个 delta 调用一次 on_delta。
    """

    name: str

    def stream_deltas(self, turns: Sequence[ConversationTurn], credential: str) -> Iterator[str]:
        ...

    def send(self, turns: Sequence[ConversationTurn], credential: str, on_delta: OnDelta) -> None:
        ...
