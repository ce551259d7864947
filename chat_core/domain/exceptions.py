"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 relay 层或客户端统一捕获并转换成用户可见的提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_WRITE_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、identity 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API（或 relay）返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，由上层决定是否重试。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class SafetyBlockedError(BusinessError):
    """生成服务因安全阈值拒绝了本次输入。"""


class AuthError(BusinessError):
    """登录、注册或登出失败。"""


class StoreError(BusinessError):
    """外部存储读写失败。"""


# relay 在开始流式输出之前失败时，响应体以此前缀开头；客户端据此区分 relay 报告的错误
ERROR_MARKER = "Error from Gemini API:"


def relay_error_text(message: str) -> str:
    return f"{ERROR_MARKER} {message}"
