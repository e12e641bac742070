"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
`code` 字段即对上层暴露的错误类型（onError 回调的 kind），
便于在 Agent 层或 UI 层做统一捕获与用户提示。
"""

from typing import Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "RATE_LIMITED"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 attempt、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class InvalidCredentialError(BusinessError):
    """API Key 为空或只包含空白字符，在发出任何网络请求之前抛出。"""

    def __init__(self, message: str = "请提供有效的 API Key"):
        super().__init__(code="INVALID_CREDENTIAL", message=message, http_status=400)


class RequestTimeoutError(BusinessError):
    """单次请求超过超时时间。不参与重试，直接抛给上层。"""

    def __init__(self, message: str = "请求超时，请检查网络连接"):
        super().__init__(code="TIMEOUT", message=message, http_status=408)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、读流中断等。"""


class ApiError(BusinessError):
    """第三方 API 返回未单独分类的非 2xx 状态时抛出。"""


class RateLimitError(BusinessError):
    """HTTP 429：Provider 限流。"""


class UnauthorizedError(BusinessError):
    """HTTP 401：API Key 无效或已过期。"""


class ForbiddenError(BusinessError):
    """HTTP 403：API Key 无权访问该模型。"""


class UnavailableError(BusinessError):
    """HTTP 503：服务暂时不可用。"""


class ProviderError(BusinessError):
    """远端返回了结构化的错误信息（已提取 message）。"""


class MalformedStreamError(BusinessError):
    """SSE 记录无法解码。只在本地记录日志并跳过，不会向上层抛出。"""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(code="MALFORMED_STREAM", message=message, http_status=502, raw=raw)


class ExhaustedRetriesError(BusinessError):
    """所有可重试的尝试均失败，包装最后一次的具体错误。"""

    def __init__(self, last_error: BusinessError, attempts: int):
        super().__init__(
            code="EXHAUSTED_RETRIES",
            message=f"多次请求失败: {last_error.message}",
            http_status=last_error.http_status,
            attempts=attempts,
        )
        self.last_error: Optional[BusinessError] = last_error


class SchedulerClosedError(BusinessError):
    """在本轮回答已 finish/abort 之后继续 feed 内容。"""

    def __init__(self, message: str = "reveal scheduler is closed for this turn"):
        super().__init__(code="SCHEDULER_CLOSED", message=message, http_status=409)
