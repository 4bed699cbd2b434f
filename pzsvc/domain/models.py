"""领域数据结构定义：作业输入输出信封与函数执行上下文。"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_serializer


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ObjectRef(BaseModel):
    """对象存储定位信息（bucket + key）。"""
    model_config = ConfigDict(frozen=True)

    bucket: str = ""
    key: str = ""


class JobInput(BaseModel):
    """作业输入报文，解析后不可变。"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    source: ObjectRef
    function: str | None = None
    options: Any = None
    destination: ObjectRef | None = None

    def wants_upload(self) -> bool:
        """destination.key 非空时才需要回传产物。"""
        return self.destination is not None and bool(self.destination.key)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class JobOutput(BaseModel):
    """作业输出信封；code/message/finished_at 只在发出终态响应时写入一次。"""
    input: JobInput | None = None
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    code: int | None = None
    message: str | None = None
    response: dict[str, Any] = Field(default_factory=dict)

    _finalized: bool = PrivateAttr(default=False)

    @field_serializer("input")
    def _serialize_input(self, value: JobInput | None) -> dict[str, Any] | None:
        return value.to_wire() if value is not None else None

    @property
    def finalized(self) -> bool:
        return self._finalized

    def finalize(self, code: int, message: str) -> None:
        """写入终态字段；重复调用说明同一请求试图发出第二个响应。"""
        if self._finalized:
            raise RuntimeError(f"job output already finalized with code {self.code}")
        self.code = code
        self.message = message
        self.finished_at = utcnow()
        self._finalized = True


@dataclass(slots=True)
class JobContext:
    """函数执行上下文：输入/输出本地路径、原始输入与可写的 response 字段。

    input_path/output_path 的文件名取自对象 key 的最后一段，但会经过清洗：
    [A-Za-z0-9._-] 以外的字符替换为 _（"my file.laz" -> "my_file.laz"），
    清洗后为空或只剩点号时改用 input.bin / output.bin。需要原始文件名时
    请读取 job_input.source.key / job_input.destination.key。
    """
    job_id: str
    function: str
    job_input: JobInput
    input_path: Path
    output_path: Path | None
    response: dict[str, Any]
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def options(self) -> Any:
        return self.job_input.options

    def cancelled(self) -> bool:
        return self.cancel_event.is_set()
