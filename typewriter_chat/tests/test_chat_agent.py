"""测试 ChatAgent 的流式对话、错误回调与中止。"""

import random
import threading

from typewriter_chat.agents.chat_agent import ChatAgent
from typewriter_chat.domain.exceptions import InvalidCredentialError, RateLimitError
from typewriter_chat.pacing.scheduler import RevealScheduler
from typewriter_chat.providers.openrouter_client import OpenRouterClient


class FixedRandom(random.Random):
    def uniform(self, a, b):
        return 1.0


class FakeProvider:
    """按预设 delta 逐个产出的 Provider，记录请求历史与流是否被关闭。"""

    name = "fake"

    def __init__(self, replies, error=None):
        self._replies = list(replies)
        self._error = error
        self.requests = []
        self.closed = 0

    def stream_deltas(self, turns, credential):
        self.requests.append([t.to_payload() for t in turns])
        deltas = self._replies.pop(0) if self._replies else []
        return self._gen(deltas)

    def _gen(self, deltas):
        try:
            for d in deltas:
                yield d
            if self._error is not None:
                raise self._error
        finally:
            self.closed += 1

    def send(self, turns, credential, on_delta):
        for d in self.stream_deltas(turns, credential):
            on_delta(d)


def make_agent(provider, sleeps=None):
    recorded = sleeps if sleeps is not None else []
    return ChatAgent(
        provider,
        scheduler_factory=lambda: RevealScheduler(base_delay_ms=20, rng=FixedRandom()),
        sleep=recorded.append,
    )


def test_completed_turn_reveals_everything_and_records_history():
    provider = FakeProvider([["你好", "，世界。"]])
    sleeps = []
    agent = make_agent(provider, sleeps)
    deltas, reveals, errors = [], [], []

    result = agent.chat(
        "hi",
        "k",
        on_delta=deltas.append,
        on_reveal=lambda chunk, delay: reveals.append((chunk, delay)),
        on_error=lambda kind, msg: errors.append(kind),
    )

    assert result.status == "completed"
    assert result.content == "你好，世界。"
    assert deltas == ["你好", "，世界。"]
    assert [c for c, _ in reveals] == ["你好", "，", "世界", "。"]
    # 每个片段显示前都按 delay_ms 等待
    assert sleeps == [d / 1000 for _, d in reveals]
    assert errors == []
    assert [t.to_payload() for t in agent.turns] == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "你好，世界。"},
    ]


def test_history_is_resent_on_next_turn():
    provider = FakeProvider([["one"], ["two"]])
    agent = make_agent(provider)
    agent.chat("first", "k")
    agent.chat("second", "k")

    assert provider.requests[1] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "one"},
        {"role": "user", "content": "second"},
    ]
    assert len(agent.turns) == 4
    agent.reset()
    assert agent.turns == []


def test_failure_calls_on_error_once_and_records_message():
    provider = FakeProvider([["partial "]], error=RateLimitError("RATE_LIMITED", "请求过于频繁，请稍后再试", 429))
    agent = make_agent(provider)
    errors = []

    result = agent.chat("hi", "k", on_error=lambda kind, msg: errors.append((kind, msg)))

    assert result.status == "failed"
    assert errors == [("RATE_LIMITED", "请求过于频繁，请稍后再试")]
    assert agent.turns[-1].role == "assistant"
    assert agent.turns[-1].content == "请求过于频繁，请稍后再试"
    assert provider.closed == 1


def test_invalid_credential_reports_without_network(monkeypatch):
    class SettingsStub:
        openrouter_base_url = "https://openrouter.ai/api/v1"
        default_model = "chat"
        http_timeout = 1.0
        max_attempts = 3
        backoff_base_ms = 1000
        backoff_max_ms = 8000
        app_referer = "http://localhost"
        app_title = "AI-ChatBot"

    class Client:
        def __init__(self, *a, **kw):
            raise AssertionError("no network call expected")

    monkeypatch.setattr("httpx.Client", Client)
    agent = make_agent(OpenRouterClient(SettingsStub(), system_prompt="sys"))
    errors = []
    result = agent.chat("hi", "  ", on_error=lambda kind, msg: errors.append((kind, msg)))

    assert result.status == "failed"
    assert isinstance(result.error, InvalidCredentialError)
    assert errors == [("INVALID_CREDENTIAL", "请提供有效的 API Key")]
    assert [t.role for t in agent.turns] == ["user", "assistant"]


def test_abort_during_reveal_stops_everything():
    provider = FakeProvider([["hello world", " more", " text"]])
    agent = make_agent(provider)
    reveals = []

    def on_reveal(chunk, delay):
        reveals.append(chunk)
        if len(reveals) == 2:
            agent.abort()

    result = agent.chat("hi", "k", on_reveal=on_reveal)

    assert result.status == "aborted"
    assert result.content == ""
    assert reveals == ["hel", "lo"]
    assert provider.closed == 1
    assert [t.role for t in agent.turns] == ["user"]


def test_abort_from_on_delta_skips_reveal():
    provider = FakeProvider([["a", "b"]])
    agent = make_agent(provider)
    reveals = []

    result = agent.chat("hi", "k", on_delta=lambda d: agent.abort(), on_reveal=lambda c, d: reveals.append(c))

    assert result.status == "aborted"
    assert reveals == []
    assert provider.closed == 1


def test_abort_flag_is_cleared_for_next_turn():
    provider = FakeProvider([["a"], ["b"]])
    agent = make_agent(provider)
    agent.abort()
    result = agent.chat("hi", "k")
    assert result.status == "completed"
    assert result.content == "a"


class TrackedProvider:
    """记录网络读取次数；全部 delta 读完后置位 finished。"""

    name = "tracked"

    def __init__(self, deltas):
        self._deltas = list(deltas)
        self.reads = 0
        self.finished = threading.Event()

    def stream_deltas(self, turns, credential):
        return self._gen()

    def _gen(self):
        for d in self._deltas:
            self.reads += 1
            yield d
        self.finished.set()

    def send(self, turns, credential, on_delta):
        for d in self.stream_deltas(turns, credential):
            on_delta(d)


def test_network_reads_are_not_blocked_by_reveal_sleeps():
    provider = TrackedProvider(["1" * 20, "2" * 20, "3" * 20])
    reads_at_sleep = []

    def sleep(seconds):
        if not reads_at_sleep:
            # 第一次显示等待期间，网络侧应能独立读完整个回复
            assert provider.finished.wait(2.0)
        reads_at_sleep.append(provider.reads)

    agent = ChatAgent(
        provider,
        scheduler_factory=lambda: RevealScheduler(base_delay_ms=20, rng=FixedRandom()),
        sleep=sleep,
    )
    delays = []
    result = agent.chat("hi", "k", on_reveal=lambda chunk, delay: delays.append(delay))

    assert result.status == "completed"
    assert result.content == "1" * 20 + "2" * 20 + "3" * 20
    assert len(delays) == 60
    assert reads_at_sleep[1:] == [3] * 59
    # 进度因子按完整回复长度计算：中段不会出现结尾的 1.05 减速
    assert delays[19] == 20
    assert delays[39] == 20
    assert delays[56] == 20
    assert delays[-1] == 21
