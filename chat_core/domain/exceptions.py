"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，便于在服务层统一捕获。

分两类：
- StateError 及其子类：调用方违反契约（编程错误），必须直接抛出，不做吞没。
- ExchangeFailed / NetworkError / ApiError：运行期可预期的失败，
  由 ExchangeCoordinator 在本地恢复（插入兜底回答并回到 IDLE）。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "INVALID_STATE"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 thread_id、message_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class StateError(BusinessError):
    """契约违规的基类，表示调用方存在 bug。"""


class InvalidState(StateError):
    """对不存在的会话/消息执行操作。"""


class UnsupportedVariant(StateError):
    """对非分支（legacy）消息执行编辑分支操作。"""


class EmptyHistory(StateError):
    """分支消息的 edits 为空，违反创建时的不变量。"""


class AlreadyStreaming(StateError):
    """同一会话已经存在进行中的流。"""


class NotStreaming(StateError):
    """当前没有进行中的流。"""


class ExchangeFailed(BusinessError):
    """一次交换（后端或模拟器）在运行期失败。"""


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """后端返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """后端限流错误，重试/退避由传输层负责。"""
