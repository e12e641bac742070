"""对话 Agent 核心模块。

把三件事串起来：
1. 维护内存中的对话历史（每轮把完整历史重新发给模型，服务端不保存会话）。
2. 在后台读取线程中消费 Provider 的流式 delta，按网络到达速率放入队列。
3. 调用方线程从队列取出所有已到达的 delta 喂给本轮的 RevealScheduler，
   再按调度器给出的节奏等待并回调 on_reveal，交给展示层绘制。

读网络与显示节奏互不阻塞：显示等待期间网络继续接收，积压在调度器中。
所有回调都在调用 chat() 的线程上执行。

任何终止性错误只回调一次 on_error，并把错误信息作为助手回复写入历史，
保证对话记录是自解释的；被中止的回答不会写入历史。
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Sequence, Tuple
from uuid import uuid4
import logging
import queue
import threading
import time

from typewriter_chat.domain.exceptions import BusinessError
from typewriter_chat.domain.models import ConversationTurn
from typewriter_chat.pacing.scheduler import RevealScheduler
from typewriter_chat.providers.base import OnDelta, ProviderClient
from typewriter_chat.infrastructure.logging.logger import logger


OnReveal = Callable[[str, int], None]
OnError = Callable[[str, str], None]

# 读取线程放入队列的消息类型
_DELTA = "delta"
_ERROR = "error"
_END = "end"

# 中止后等待读取线程退出的上限（秒）；读取线程阻塞在网络读时会在下一个 chunk 到达后自行关闭连接
READER_JOIN_TIMEOUT = 1.0


@dataclass
class TurnResult:
    """一轮回答的最终结果。

    status:
        - "completed": 流正常结束且积压已全部显示。
        - "failed": 出现终止性错误，content 为错误提示文本。
        - "aborted": 被调用方中止，content 为空，历史中不追加助手消息。
    """

    status: Literal["completed", "failed", "aborted"]
    content: str
    error: Optional[BusinessError] = None


def _read_deltas(deltas: Iterator[str], channel: "queue.Queue[Tuple[str, Any]]", stop: threading.Event) -> None:
    """读取线程：按到达顺序把 delta 放入队列，结束时总会放入 _END。"""

    try:
        for delta in deltas:
            channel.put((_DELTA, delta))
            if stop.is_set():
                break
    except Exception as e:  # 交给调用方线程重新抛出
        channel.put((_ERROR, e))
    finally:
        close = getattr(deltas, "close", None)
        if close is not None:
            # 释放底层连接；流已正常结束时为空操作
            close()
        channel.put((_END, None))


class ChatAgent:
    def __init__(
        self,
        provider_client: ProviderClient,
        *,
        scheduler_factory: Callable[[], RevealScheduler] = RevealScheduler,
        sleep: Callable[[float], None] = time.sleep,
        history: Optional[Sequence[ConversationTurn]] = None,
    ):
        self._provider_client = provider_client
        self._scheduler_factory = scheduler_factory
        self._sleep = sleep
        self._turns: List[ConversationTurn] = list(history or [])
        self._abort_requested = False

    @property
    def turns(self) -> List[ConversationTurn]:
        return list(self._turns)

    def reset(self) -> None:
        """清空对话历史。"""
        self._turns.clear()

    def abort(self) -> None:
        """请求中止当前正在进行的回答。

        可在回调（on_delta / on_reveal）内部或其他线程调用；
        Agent 会在下一个检查点停止读取线程、关闭网络流并丢弃调度器状态。
        """
        self._abort_requested = True

    def chat(
        self,
        user_input: str,
        credential: str,
        *,
        on_delta: Optional[OnDelta] = None,
        on_reveal: Optional[OnReveal] = None,
        on_error: Optional[OnError] = None,
    ) -> TurnResult:
        """执行一轮对话。

        Args:
            user_input: 用户输入
            credential: OpenRouter API Key，由调用方每次传入，不做持久化
            on_delta: 每个原始 delta 到达时回调
            on_reveal: 每个节奏化的显示片段回调 (chunk, delay_ms)
            on_error: 终止性错误回调 (kind, message)，每轮至多一次

        Returns:
            TurnResult
        """
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"turn_id": f"t-{uuid4().hex}"}
        self._abort_requested = False

        self._turns.append(ConversationTurn(role="user", content=user_input))
        scheduler = self._scheduler_factory()
        channel: "queue.Queue[Tuple[str, Any]]" = queue.Queue()
        stop = threading.Event()
        reader: Optional[threading.Thread] = None
        self._log(logging.INFO, "Starting turn", log_ctx, history_size=len(self._turns))

        try:
            deltas = self._provider_client.stream_deltas(list(self._turns), credential)
            reader = threading.Thread(
                target=_read_deltas,
                args=(deltas, channel, stop),
                name=f"delta-reader-{log_ctx['turn_id']}",
                daemon=True,
            )
            reader.start()

            stream_done = False
            while True:
                if not stream_done:
                    # 没有积压可显示时阻塞等待下一个 delta，否则只取已到达的部分
                    stream_done = self._pump(channel, scheduler, on_delta, block=not scheduler.state.backlog)
                    if self._abort_requested:
                        return self._aborted(scheduler, log_ctx)
                    if stream_done:
                        scheduler.finish()
                event = scheduler.next_event()
                if event is None:
                    if stream_done:
                        break
                    continue
                self._sleep(event.delay_ms / 1000)
                if self._abort_requested:
                    return self._aborted(scheduler, log_ctx)
                if on_reveal:
                    on_reveal(event.chunk, event.delay_ms)
        except BusinessError as e:
            scheduler.abort()
            self._log(logging.ERROR, "Turn failed", log_ctx, code=e.code, error=e.message)
            if on_error:
                on_error(e.code, e.message)
            self._turns.append(ConversationTurn(role="assistant", content=e.message))
            return TurnResult(status="failed", content=e.message, error=e)
        finally:
            stop.set()
            if reader is not None:
                reader.join(READER_JOIN_TIMEOUT)
                if reader.is_alive():
                    self._log(logging.WARNING, "Delta reader still blocked on network", log_ctx)

        content = scheduler.state.accumulated_text
        self._turns.append(ConversationTurn(role="assistant", content=content))
        self._log(
            logging.INFO,
            "Completed turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            reply_length=len(content),
        )
        return TurnResult(status="completed", content=content)

    def _pump(
        self,
        channel: "queue.Queue[Tuple[str, Any]]",
        scheduler: RevealScheduler,
        on_delta: Optional[OnDelta],
        block: bool,
    ) -> bool:
        """把队列中已到达的 delta 全部喂给调度器；返回 True 表示流已结束。

        读取线程转交的异常在这里重新抛出。
        """

        while True:
            try:
                kind, value = channel.get() if block else channel.get_nowait()
            except queue.Empty:
                return False
            block = False
            if kind == _END:
                return True
            if kind == _ERROR:
                raise value
            if on_delta:
                on_delta(value)
            if self._abort_requested:
                return False
            scheduler.feed(value)

    def _aborted(self, scheduler: RevealScheduler, log_ctx: Dict[str, Any]) -> TurnResult:
        revealed = scheduler.state.revealed_length
        scheduler.abort()
        self._log(logging.INFO, "Turn aborted", log_ctx, revealed_length=revealed)
        return TurnResult(status="aborted", content="")

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
