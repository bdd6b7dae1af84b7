"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
适配器边界处会把 httpx 异常转换为这些类型；
respond 将其转换为错误文本，stream 则在迭代器上抛出。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider 等）。
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
    """后端返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误。"""


class ValidationError(BusinessError):
    """参数或配置校验失败，例如缺少 API 密钥。"""


class MalformedResponseError(BusinessError):
    """后端响应无法解析或缺少必要字段，按后端失败处理。"""


def error_text(exc: BusinessError) -> str:
    """把异常转换为展示给用户的 assistant 文本。"""

    return f"An error occurred: {exc.message}"
