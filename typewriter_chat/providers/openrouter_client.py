"""OpenRouter Provider 适配器。

本模块负责：

1. 接收有序的 ConversationTurn 列表，拼上固定的系统提示词，转换为
   OpenAI 兼容的 /chat/completions 流式请求。
2. 单次网络操作受 httpx 超时约束，整次尝试另有整体时限；非超时的失败按指数退避重试（默认共 3 次）。
3. 将非 2xx 响应按状态码归类为具体的业务异常，并尽量提取厂商返回的错误信息。
4. 把 SSE 响应体解码为按到达顺序排列的 delta 文本。

客户端本身不保存跨 send() 调用的状态。
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

import httpx

from typewriter_chat.config.settings import settings
from typewriter_chat.domain.exceptions import (
    ApiError,
    BusinessError,
    ExhaustedRetriesError,
    ForbiddenError,
    InvalidCredentialError,
    NetworkError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    UnauthorizedError,
    UnavailableError,
)
from typewriter_chat.domain.models import ConversationTurn
from typewriter_chat.infrastructure.logging.logger import logger
from typewriter_chat.prompts import load_system_prompt
from typewriter_chat.providers.base import OnDelta
from typewriter_chat.providers.registry import OPENROUTER_CONFIG, ModelConfig, get_model_config
from typewriter_chat.providers.sse import iter_deltas


# 状态码 -> (异常类型, 错误码, 默认提示)
_STATUS_ERRORS = {
    429: (RateLimitError, "RATE_LIMITED", "请求过于频繁，请稍后再试"),
    401: (UnauthorizedError, "UNAUTHORIZED", "API Key 无效或已过期，请检查你的 OpenRouter API Key"),
    403: (ForbiddenError, "FORBIDDEN", "访问被拒绝，请检查 API Key 权限或尝试使用其他模型"),
    503: (UnavailableError, "UNAVAILABLE", "服务暂时不可用，请稍后再试"),
}


@dataclass
class AttemptState:
    """一次 send() 内部的重试状态，只在该调用期间存在。"""

    attempt: int = 0
    last_error: Optional[BusinessError] = None
    backoff_ms: int = 0


def compute_backoff_ms(retry_index: int, base_ms: int = 1000, max_ms: int = 8000) -> int:
    """第 retry_index 次重试前的等待时间：min(base * 2^n, max)。"""

    return min(base_ms * (2 ** retry_index), max_ms)


def extract_error_message(body: str) -> Optional[str]:
    """从错误响应体中提取厂商错误信息。

    优先读取 error.metadata.raw（上游厂商的原始错误，本身是一段 JSON），
    其次读取顶层 error.message。解析失败返回 None，由调用方回退到按状态码的默认提示。
    """

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Failed to parse error body", extra={"extra": {"error": str(e)}})
        return None
    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict):
        return None

    metadata = error.get("metadata")
    raw = metadata.get("raw") if isinstance(metadata, dict) else None
    if raw:
        provider_message = _nested_error_message(raw)
        if provider_message:
            return f"服务提供商错误: {provider_message}"

    message = error.get("message")
    if isinstance(message, str) and message:
        return f"OpenRouter API 错误: {message}"
    return None


def _nested_error_message(raw: Any) -> Optional[str]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if not isinstance(raw, dict):
        return None
    inner = raw.get("error")
    message = inner.get("message") if isinstance(inner, dict) else None
    return message if isinstance(message, str) and message else None


class OpenRouterClient:
    """OpenRouter 流式客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - stream_deltas: 惰性 delta 序列；关闭迭代器即取消请求并释放连接。
    - send: 回调形式的统一调用入口。
    """

    name = "openrouter"

    def __init__(
        self,
        cfg=settings,
        *,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = cfg
        self._model = model or getattr(cfg, "default_model", "chat")
        self._system_prompt = system_prompt
        self._sleep = sleep
        self._clock = clock

    def send(self, turns: Sequence[ConversationTurn], credential: str, on_delta: OnDelta) -> None:
        """发送对话并把每个 delta 按到达顺序交给 on_delta。

        成功则正常返回；失败抛出 domain.exceptions 中的某个终止性异常。
        """

        for delta in self.stream_deltas(turns, credential):
            on_delta(delta)

    def stream_deltas(self, turns: Sequence[ConversationTurn], credential: str) -> Iterator[str]:
        """返回惰性的 delta 序列。

        凭证校验在这里立即执行（不等到开始迭代），空凭证不会产生任何网络请求。
        """

        token = (credential or "").strip()
        if not token:
            raise InvalidCredentialError()
        model_cfg = get_model_config(OPENROUTER_CONFIG, self._model)
        payload = self._build_payload(turns, model_cfg)
        return self._stream_with_retry(payload, token)

    # ---- 重试循环 ----

    def _stream_with_retry(self, payload: dict, token: str) -> Iterator[str]:
        max_attempts = getattr(self._settings, "max_attempts", 3)
        state = AttemptState()
        while True:
            state.attempt += 1
            delivered = False
            logger.info(
                "Sending completion request",
                extra={"extra": {"attempt": state.attempt, "max_attempts": max_attempts, "model": payload["model"]}},
            )
            stream = self._stream_once(payload, token)
            try:
                for delta in stream:
                    delivered = True
                    yield delta
                return
            except RequestTimeoutError as e:
                logger.error("Request timed out", extra={"extra": {"attempt": state.attempt, "code": e.code}})
                raise
            except BusinessError as e:
                state.last_error = e
                logger.error(
                    "Request attempt failed",
                    extra={"extra": {"attempt": state.attempt, "code": e.code, "error": e.message}},
                )
                if delivered:
                    # 已经有内容交给上层，重发会让可见文本重复
                    raise
                if state.attempt >= max_attempts:
                    raise ExhaustedRetriesError(e, attempts=state.attempt) from e
                state.backoff_ms = compute_backoff_ms(
                    state.attempt - 1,
                    getattr(self._settings, "backoff_base_ms", 1000),
                    getattr(self._settings, "backoff_max_ms", 8000),
                )
                logger.info("Backing off before retry", extra={"extra": {"backoff_ms": state.backoff_ms}})
                self._sleep(state.backoff_ms / 1000)
            finally:
                stream.close()

    def _stream_once(self, payload: dict, token: str) -> Iterator[str]:
        base = getattr(self._settings, "openrouter_base_url", None) or OPENROUTER_CONFIG.base_url
        # httpx 的超时只约束单次连接/读写操作，整体时限由 _within_deadline 在 chunk 之间检查
        timeout = httpx.Timeout(self._settings.http_timeout)
        deadline = self._clock() + getattr(self._settings, "request_deadline", 120.0)
        try:
            with httpx.Client(timeout=timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{base}/chat/completions",
                    json=payload,
                    headers=self._headers(token),
                ) as resp:
                    if resp.status_code < 200 or resp.status_code >= 300:
                        resp.read()
                        raise self._classify_error(resp.status_code, resp.text, resp.reason_phrase)
                    yield from iter_deltas(self._within_deadline(resp.iter_text(), deadline))
                    logger.info("Response stream finished")
        except httpx.TimeoutException as e:
            raise RequestTimeoutError() from e
        except httpx.HTTPError as e:
            # 网络错误：DNS 失败、连接被重置、读流中断等
            raise NetworkError(code="NETWORK_ERROR", message=str(e), http_status=502) from e

    def _within_deadline(self, chunks: Iterator[str], deadline: float) -> Iterator[str]:
        for chunk in chunks:
            if self._clock() > deadline:
                logger.error("Request deadline exceeded", extra={"extra": {"deadline": deadline}})
                raise RequestTimeoutError()
            yield chunk

    # ---- 辅助方法 ----

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "HTTP-Referer": getattr(self._settings, "app_referer", "http://localhost"),
            "X-Title": getattr(self._settings, "app_title", "AI-ChatBot"),
        }

    def _build_payload(self, turns: Sequence[ConversationTurn], model_cfg: ModelConfig) -> dict:
        """将对话历史转成 OpenRouter 所需的请求 JSON。"""

        system_prompt = self._system_prompt or load_system_prompt("chat")
        msgs = [{"role": "system", "content": system_prompt}]
        msgs.extend(turn.to_payload() for turn in turns)
        return {
            "model": model_cfg.provider_model,
            "messages": msgs,
            "stream": True,
            "temperature": model_cfg.default_temperature,
            "max_tokens": model_cfg.max_tokens,
            "top_p": model_cfg.top_p,
            "frequency_penalty": model_cfg.frequency_penalty,
            "presence_penalty": model_cfg.presence_penalty,
        }

    @staticmethod
    def _classify_error(status: int, body: str, reason: str = "") -> BusinessError:
        """按状态码归类错误；提取到的厂商信息只补充 message，不会改变错误类型。"""

        logger.error(
            "API response error",
            extra={"extra": {"status": status, "reason": reason, "body": (body or "")[:500]}},
        )
        provider_message = extract_error_message(body)
        if status in _STATUS_ERRORS:
            cls, code, default_message = _STATUS_ERRORS[status]
            return cls(code=code, message=provider_message or default_message, http_status=status)
        if provider_message:
            return ProviderError(code="PROVIDER_ERROR", message=provider_message, http_status=status)
        return ApiError(
            code="API_ERROR",
            message=f"API请求失败: {status} {reason}\n{body}".rstrip(),
            http_status=status,
        )
