"""函数抽象：把本地文件到文件的处理步骤统一为可注册的 Transform。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from pzsvc.domain.errors import BadRequestError
from pzsvc.domain.models import JobContext

# 返回值作为成功响应的 message；返回 None 时使用默认文案。
Transform = Callable[[JobContext], "str | None"]


class BaseFunction(ABC):
    """内置函数基类。"""
    name: str
    description: str = ""
    requires_output: bool = False

    @abstractmethod
    def run(self, ctx: JobContext) -> str | None:
        """执行处理，结果写入 ctx.output_path 与 ctx.response。"""

    def require_output(self, ctx: JobContext) -> Path:
        """返回输出路径；请求未指定 destination 时属于客户端错误。"""
        if ctx.output_path is None:
            raise BadRequestError(f"function {self.name} requires a destination")
        return ctx.output_path

    def __call__(self, ctx: JobContext) -> str | None:
        if self.requires_output:
            self.require_output(ctx)
        return self.run(ctx)
