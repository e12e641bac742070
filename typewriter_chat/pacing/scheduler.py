"""打字机节奏调度器。

模型本身以大小不一的突发块推送内容，收到就立即显示会显得很跳。
RevealScheduler 把“到达速率”（由网络决定）与“显示速率”（适合人阅读）解耦：
自己维护一份待显示的积压文本，按标点、词组、段落边界切成小片段，
并为每个片段计算显示前应等待的毫秒数。

调度器是单线程、纯状态的：它不睡眠，也不做 I/O，只产出 RevealEvent，
由调用方负责等待 delay_ms 后再显示 chunk。
"""

import random
from enum import Enum
from typing import Iterator, Optional

from typewriter_chat.config.settings import settings
from typewriter_chat.domain.exceptions import SchedulerClosedError
from typewriter_chat.domain.models import RevealEvent, RevealState


SENTENCE_END = frozenset(".!?。！？")
COMMA_LIKE = frozenset(",，、")
COLON_LIKE = frozenset(":：")
QUOTES = frozenset("\"'“”‘’")
PUNCTUATION = SENTENCE_END | COMMA_LIKE | COLON_LIKE | QUOTES

SENTENCE_PAUSE_MS = 250
COMMA_PAUSE_MS = 120
COLON_PAUSE_MS = 180
QUOTE_PAUSE_MS = 80
PARAGRAPH_PAUSE_MS = 350

MAX_CJK_GROUP = 2
MAX_LATIN_GROUP = 4
LATIN_STEP = 3

RANDOM_JITTER = (0.98, 1.02)


class SchedulerPhase(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    DRAINING = "draining"
    COMPLETE = "complete"
    ABORTED = "aborted"


def _is_cjk(ch: str) -> bool:
    return "\u4e00" <= ch <= "\u9fff" or "\u3400" <= ch <= "\u4dbf"


def _is_latin(ch: str) -> bool:
    # 只把小写字母（含 Latin-1 带重音的小写字母）算作词内字符，大写字母（通常是词首）单独显示
    return "a" <= ch <= "z" or ("\u00df" <= ch <= "\u00ff" and ch != "\u00f7")


def _run_length(text: str, predicate) -> int:
    n = 0
    for ch in text:
        if not predicate(ch):
            break
        n += 1
    return n


def next_chunk_size(backlog: str) -> int:
    """决定积压文本开头下一次显示多少个字符。"""

    if not backlog:
        return 0
    first = backlog[0]
    if first in PUNCTUATION:
        return 1
    if _is_cjk(first):
        run = _run_length(backlog, _is_cjk)
        return run if run <= MAX_CJK_GROUP else 1
    if _is_latin(first):
        run = _run_length(backlog, _is_latin)
        return run if run <= MAX_LATIN_GROUP else LATIN_STEP
    # 空格（包括后面紧跟字母的空格）及其他字符都逐个显示
    return 1


def length_factor(total_length: int) -> float:
    """回复越长，每个片段越快。"""

    if total_length < 100:
        return 1.0
    if total_length <= 500:
        return 0.95
    if total_length <= 1000:
        return 0.9
    return 0.85


def progress_factor(revealed_length: int, total_length: int) -> float:
    """开头略快，结尾略慢。"""

    if total_length <= 0:
        return 1.0
    progress = revealed_length / total_length
    if progress < 0.1:
        return 0.9
    if progress < 0.2:
        return 0.95
    if progress >= 0.95:
        return 1.05
    return 1.0


def punctuation_pause(previous: str) -> int:
    if not previous:
        return 0
    ch = previous[-1]
    if ch in SENTENCE_END:
        return SENTENCE_PAUSE_MS
    if ch in COMMA_LIKE:
        return COMMA_PAUSE_MS
    if ch in COLON_LIKE:
        return COLON_PAUSE_MS
    if ch in QUOTES:
        return QUOTE_PAUSE_MS
    return 0


def paragraph_pause(previous: str) -> int:
    return PARAGRAPH_PAUSE_MS if previous.endswith("\n\n") else 0


class RevealScheduler:
    """单轮回答的显示调度器。

    状态流转：IDLE -> STREAMING（feed 到达）-> DRAINING（finish 后继续排空积压）
    -> COMPLETE；任意时刻 abort() 进入 ABORTED，立即丢弃全部状态。
    """

    def __init__(self, *, base_delay_ms: Optional[float] = None, rng: Optional[random.Random] = None):
        self._state = RevealState()
        self._phase = SchedulerPhase.IDLE
        self._base_delay_ms = (
            base_delay_ms if base_delay_ms is not None else getattr(settings, "reveal_base_delay_ms", 20.0)
        )
        self._rng = rng or random.Random()

    @property
    def state(self) -> RevealState:
        return self._state

    @property
    def phase(self) -> SchedulerPhase:
        return self._phase

    @property
    def is_complete(self) -> bool:
        return self._phase is SchedulerPhase.COMPLETE

    @property
    def is_closed(self) -> bool:
        return self._phase in (SchedulerPhase.DRAINING, SchedulerPhase.COMPLETE, SchedulerPhase.ABORTED)

    def feed(self, delta: str) -> None:
        """追加新到达的内容。finish()/abort() 之后调用会抛出 SchedulerClosedError。"""

        if self.is_closed:
            raise SchedulerClosedError(f"feed() called in phase {self._phase.value}")
        if not delta:
            return
        self._state.accumulated_text += delta
        self._phase = SchedulerPhase.STREAMING

    def finish(self) -> None:
        """流已结束：不再接受 feed，剩余积压继续按节奏排空。"""

        if self.is_closed:
            return
        self._phase = SchedulerPhase.DRAINING if self._state.backlog else SchedulerPhase.COMPLETE

    def abort(self) -> None:
        self._state = RevealState()
        self._phase = SchedulerPhase.ABORTED

    def next_event(self) -> Optional[RevealEvent]:
        """取出下一个显示事件；当前没有积压时返回 None。"""

        if self._phase in (SchedulerPhase.IDLE, SchedulerPhase.COMPLETE, SchedulerPhase.ABORTED):
            return None
        backlog = self._state.backlog
        if not backlog:
            return None

        size = next_chunk_size(backlog)
        chunk = backlog[:size]
        delay_ms = self._delay_ms()
        self._state.revealed_length += size

        if self._phase is SchedulerPhase.DRAINING and not self._state.backlog:
            self._phase = SchedulerPhase.COMPLETE
        return RevealEvent(chunk=chunk, delay_ms=delay_ms)

    def drain(self) -> Iterator[RevealEvent]:
        """依次产出当前积压的全部显示事件。"""

        while True:
            event = self.next_event()
            if event is None:
                return
            yield event

    def _delay_ms(self) -> int:
        total = self._state.total_length
        revealed = self._state.revealed_text
        delay = (
            self._base_delay_ms
            * length_factor(total)
            * progress_factor(self._state.revealed_length, total)
            * self._rng.uniform(*RANDOM_JITTER)
        )
        delay += punctuation_pause(revealed) + paragraph_pause(revealed)
        return int(round(delay))
