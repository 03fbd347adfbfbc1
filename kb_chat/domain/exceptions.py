"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 CLI 层做统一捕获与用户提示，然后继续交互循环。

分类：
- ValidationError / InvalidInputError：输入或配置不合法，未产生任何副作用。
- SourceUnavailableError / KnowledgeUnavailableError：知识库目录缺失或不可读，可重试。
- ProviderError 及其子类：模型服务侧的任何失败。
- StreamCancelledError：流式调用被调用方取消。
- CacheError：缓存后端故障，只在缓存层内部使用，编排器会降级处理。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "SOURCE_UNAVAILABLE"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、path 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class InvalidInputError(ValidationError):
    """用户输入为空或只包含空白字符。"""

    def __init__(self, message: str = "User message cannot be empty.", **extra):
        super().__init__(code="INVALID_INPUT", message=message, **extra)


class SourceUnavailableError(BusinessError):
    """知识库目录不存在或无法读取。"""


class KnowledgeUnavailableError(BusinessError):
    """加载系统上下文时知识源失败，会话保持未初始化状态。"""


class ProviderError(BusinessError):
    """Provider 调用失败的统一父类，编排器只透传，不区分子类。"""


class NetworkError(ProviderError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(ProviderError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(ProviderError):
    """Provider 限流错误，由上层负责重试/退避策略。"""


class AuthenticationError(ProviderError):
    """缺少 API Key 或服务端拒绝认证（401/403）。"""


class MalformedResponseError(ProviderError):
    """响应体无法解析为预期的 JSON 结构。"""


class StreamCancelledError(BusinessError):
    """流式输出被外部取消信号中止。"""

    def __init__(self, message: str = "Streaming response cancelled", **extra):
        super().__init__(code="STREAM_CANCELLED", message=message, http_status=499, **extra)


class CacheError(BusinessError):
    """缓存读写失败。"""
