"""响应信封辅助：解析作业输入，发出 200/400/500 信封并异步上报对应状态。"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response

from pzsvc.application.status import StatusReporter
from pzsvc.domain.enums import JobStatus
from pzsvc.domain.errors import BodyReadError, JobInputParseError, MissingBodyError, ServiceError
from pzsvc.domain.models import JobInput, JobOutput
from pzsvc.infra.logging.context import get_log_context

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json; charset=UTF-8"

_STATUS_BY_CODE = {
    200: JobStatus.success,
    400: JobStatus.fail,
    500: JobStatus.error,
}


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for item in exc.errors(include_url=False):
        loc = ".".join(str(segment) for segment in item.get("loc", ())) or "body"
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)


def parse_job_input(raw: bytes | None) -> JobInput:
    """把请求体解析为 JobInput；缺失抛 MissingBodyError，格式错误抛 JobInputParseError。"""
    if raw is None or not raw.strip():
        raise MissingBodyError()
    try:
        return JobInput.model_validate_json(raw)
    except ValidationError as exc:
        raise JobInputParseError(_describe_validation_error(exc)) from exc


async def read_job_input(request: Request) -> JobInput:
    """读取完整请求体后解析；读流失败抛 BodyReadError。"""
    try:
        raw = await request.body()
    except (ClientDisconnect, RuntimeError) as exc:
        raise BodyReadError(f"unable to read request body: {exc}") from exc
    return parse_job_input(raw)


class Responder:
    """终态响应发送器：每个 JobOutput 只能被发送一次。"""
    def __init__(self, reporter: StatusReporter) -> None:
        self._reporter = reporter

    def ok(self, output: JobOutput, message: str) -> Response:
        return self._respond(output, 200, message)

    def bad_request(self, output: JobOutput, message: str) -> Response:
        return self._respond(output, 400, message)

    def internal_error(self, output: JobOutput, message: str) -> Response:
        return self._respond(output, 500, message)

    def error(self, output: JobOutput, exc: ServiceError) -> Response:
        """按异常类别选择 400 或 500。"""
        if 400 <= exc.status_code < 500:
            return self.bad_request(output, exc.message)
        return self.internal_error(output, exc.message)

    def _respond(self, output: JobOutput, code: int, message: str) -> Response:
        output.finalize(code, message)
        try:
            body = output.model_dump_json().encode("utf-8")
        except (ValueError, TypeError) as exc:
            # 编码失败降级为 500 信封，而不是丢弃响应或终止进程。
            logger.error(
                "job output encoding failed",
                extra={
                    "event": "job.response.encode.failed",
                    "status_code": code,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            code = 500
            body = self._fallback_body(output, f"failed to encode response: {exc}")
        status = _STATUS_BY_CODE[code]
        ctx = get_log_context()
        return Response(
            content=body,
            status_code=code,
            media_type=JSON_MEDIA_TYPE,
            background=BackgroundTask(
                self._reporter.report,
                status,
                request_id=ctx.get("request_id"),
                job_id=ctx.get("job_id"),
            ),
        )

    @staticmethod
    def _fallback_body(output: JobOutput, message: str) -> bytes:
        payload = {
            "input": output.input.to_wire() if output.input is not None else None,
            "started_at": output.started_at.isoformat(),
            "finished_at": output.finished_at.isoformat() if output.finished_at else None,
            "code": 500,
            "message": message,
            "response": {},
        }
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
