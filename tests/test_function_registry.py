"""函数注册中心测试：内置函数、按名称注册与未知函数。"""

from pathlib import Path

import pytest

from pzsvc.domain.errors import BadRequestError, UnknownFunctionError
from pzsvc.domain.functions.builtin import CopyFunction, InfoFunction
from pzsvc.domain.functions.registry import FunctionRegistry
from pzsvc.domain.models import JobContext, JobInput, ObjectRef


def _context(tmp_path: Path, *, with_output: bool) -> JobContext:
    input_path = tmp_path / "in.laz"
    input_path.write_bytes(b"abc")
    return JobContext(
        job_id="job-1",
        function="test",
        job_input=JobInput(source=ObjectRef(bucket="b", key="in.laz")),
        input_path=input_path,
        output_path=tmp_path / "out.laz" if with_output else None,
        response={},
    )


def test_registry_includes_builtins() -> None:
    assert FunctionRegistry().names() == ["copy", "info"]
    assert FunctionRegistry(include_builtins=False).names() == []


def test_register_uses_function_name() -> None:
    def thin(ctx: JobContext) -> str:
        return "thinned"

    registry = FunctionRegistry(include_builtins=False)
    registry.register(thin)
    registry.register(thin, name="decimate")

    assert registry.names() == ["decimate", "thin"]
    assert registry.get("thin") is thin


def test_unknown_function_is_bad_request() -> None:
    with pytest.raises(UnknownFunctionError) as exc_info:
        FunctionRegistry().get("ground")
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "unknown function: ground"


def test_copy_requires_destination(tmp_path: Path) -> None:
    """copy 没有输出路径时属于客户端错误。"""
    with pytest.raises(BadRequestError):
        CopyFunction()(_context(tmp_path, with_output=False))


def test_copy_writes_output(tmp_path: Path) -> None:
    ctx = _context(tmp_path, with_output=True)
    assert CopyFunction()(ctx) is None
    assert ctx.output_path is not None
    assert ctx.output_path.read_bytes() == b"abc"
    assert ctx.response == {"size_bytes": 3}


def test_info_reports_digest(tmp_path: Path) -> None:
    ctx = _context(tmp_path, with_output=False)
    InfoFunction()(ctx)
    assert ctx.response["filename"] == "in.laz"
    assert ctx.response["size_bytes"] == 3
    assert ctx.response["sha256"] == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
