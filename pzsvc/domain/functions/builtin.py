"""内置函数：copy 原样复制输入，info 报告输入文件大小与摘要。"""

from __future__ import annotations

import shutil

from pzsvc.domain.functions.base import BaseFunction
from pzsvc.domain.models import JobContext
from pzsvc.infra.storage.workspace import sha256_file


class CopyFunction(BaseFunction):
    name = "copy"
    description = "Copy the source object to the destination unchanged."
    requires_output = True

    def run(self, ctx: JobContext) -> str | None:
        output_path = self.require_output(ctx)
        shutil.copyfile(ctx.input_path, output_path)
        ctx.response["size_bytes"] = output_path.stat().st_size
        return None


class InfoFunction(BaseFunction):
    name = "info"
    description = "Report size and SHA-256 of the source object."

    def run(self, ctx: JobContext) -> str | None:
        ctx.response["filename"] = ctx.input_path.name
        ctx.response["size_bytes"] = ctx.input_path.stat().st_size
        ctx.response["sha256"] = sha256_file(ctx.input_path)
        return None
