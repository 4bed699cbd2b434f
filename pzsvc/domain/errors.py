"""错误分类：每类异常携带对外 HTTP 状态码，便于边界层统一转换为响应信封。"""

from __future__ import annotations


class ServiceError(Exception):
    """服务异常基类。"""
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    """客户端输入错误，对应 400。"""
    status_code = 400


class MissingBodyError(BadRequestError):
    def __init__(self, message: str = "No JSON") -> None:
        super().__init__(message)


class JobInputParseError(BadRequestError):
    pass


class UnknownFunctionError(BadRequestError):
    def __init__(self, function: str) -> None:
        super().__init__(f"unknown function: {function}")
        self.function = function


class InternalError(ServiceError):
    """服务端处理失败，对应 500。"""
    status_code = 500


class BodyReadError(InternalError):
    pass


class TransformError(InternalError):
    pass


class JobTimeoutError(InternalError):
    pass


class StorageError(InternalError):
    """对象存储错误统一包装，屏蔽具体云厂商异常形态。"""

    def __init__(self, *, operation: str, bucket: str, key: str, cause: BaseException) -> None:
        super().__init__(f"{operation} s3://{bucket}/{key} failed: {cause}")
        self.operation = operation
        self.bucket = bucket
        self.key = key
        self.cause = cause


class HTTPError(ServiceError):
    """出站调用返回非 2xx 或无法解析的响应。"""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message
        self.status_code = status


class RequestBuildError(ServiceError):
    """请求装饰链中至少一个装饰器失败。"""

    def __init__(self, errors: list[Exception]) -> None:
        detail = "; ".join(f"{type(item).__name__}: {item}" for item in errors)
        super().__init__(f"request decoration failed: {detail}")
        self.errors = list(errors)


class ConfigError(RuntimeError):
    pass
