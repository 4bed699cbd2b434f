"""函数注册中心：按名称管理可通过 POST /{function} 调用的 Transform。"""

from __future__ import annotations

from pzsvc.domain.errors import UnknownFunctionError
from pzsvc.domain.functions.base import Transform
from pzsvc.domain.functions.builtin import CopyFunction, InfoFunction


class FunctionRegistry:
    """函数注册中心；注册须在启动阶段完成。"""
    def __init__(self, *, include_builtins: bool = True) -> None:
        self._functions: dict[str, Transform] = {}
        if include_builtins:
            self.register(CopyFunction())
            self.register(InfoFunction())

    def register(self, transform: Transform, name: str | None = None) -> None:
        """注册函数；未指定名称时依次取 transform.name、__name__。"""
        function_name = name or getattr(transform, "name", None) or getattr(transform, "__name__", None)
        if not function_name:
            raise ValueError("function name is required")
        self._functions[function_name] = transform

    def get(self, name: str) -> Transform:
        try:
            return self._functions[name]
        except KeyError as exc:
            raise UnknownFunctionError(name) from exc

    def names(self) -> list[str]:
        return sorted(self._functions)
