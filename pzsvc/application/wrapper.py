"""作业包装器：把本地文件处理函数适配为 下载 -> 执行 -> 上传 -> 响应 的 HTTP 处理器。"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from contextlib import ExitStack
from typing import Any, Awaitable, Callable
from uuid import uuid4

from starlette.requests import Request
from starlette.responses import Response

from pzsvc.api.responses import Responder, read_job_input
from pzsvc.domain.errors import BadRequestError, InternalError, JobTimeoutError, ServiceError, TransformError
from pzsvc.domain.functions.base import Transform
from pzsvc.domain.models import JobContext, JobInput, JobOutput
from pzsvc.infra.logging.context import bind_log_context
from pzsvc.infra.storage.gateway import StorageGateway, derive_filename
from pzsvc.infra.storage.workspace import WorkspaceManager

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_MESSAGE = "Success!"

Handler = Callable[[Request], Awaitable[Response]]


class JobWrapper:
    """作业包装器。

    每个请求在独立工作区内顺序执行 fetch、transform、upload，整体受
    timeout_seconds 约束；任何一步失败立即返回对应信封，不做重试。
    """
    def __init__(
        self,
        *,
        storage: StorageGateway,
        workspace_manager: WorkspaceManager,
        responder: Responder,
        timeout_seconds: float,
    ) -> None:
        self._storage = storage
        self._workspace_manager = workspace_manager
        self._responder = responder
        self._timeout_seconds = timeout_seconds

    def wrap(self, transform: Transform, *, function: str | None = None) -> Handler:
        """返回可直接挂到路由上的异步处理器。"""
        function_name = function or getattr(transform, "name", None) or getattr(transform, "__name__", "transform")

        async def handler(request: Request) -> Response:
            return await self.handle(request, transform, function_name)

        return handler

    async def handle(self, request: Request, transform: Transform, function: str) -> Response:
        output = JobOutput()
        job_id = uuid4().hex
        with bind_log_context(job_id=job_id, function=function):
            try:
                job_input = await read_job_input(request)
            except ServiceError as exc:
                logger.warning(
                    "job input rejected",
                    extra={
                        "event": "job.input.rejected",
                        "status_code": exc.status_code,
                        "error_type": type(exc).__name__,
                        "error": exc.message,
                    },
                )
                return self._responder.error(output, exc)
            output.input = job_input

            logger.info(
                "job started",
                extra={"event": "job.started", "payload_preview": job_input.to_wire()},
            )
            # 工作线程只写入自己的 response 副本，超时后主响应不会与其竞争。
            response: dict[str, Any] = {}
            cancel_event = threading.Event()
            started = time.perf_counter()
            try:
                message = await asyncio.wait_for(
                    asyncio.to_thread(
                        self._execute, job_id, function, job_input, transform, response, cancel_event
                    ),
                    timeout=self._timeout_seconds,
                )
            except asyncio.TimeoutError:
                cancel_event.set()
                exc = JobTimeoutError(f"job exceeded timeout of {self._timeout_seconds:g}s")
                logger.error(
                    "job timed out",
                    extra={
                        "event": "job.timeout",
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "error_type": type(exc).__name__,
                        "error": exc.message,
                    },
                )
                return self._responder.error(output, exc)
            except asyncio.CancelledError:
                cancel_event.set()
                raise
            except ServiceError as exc:
                output.response.update(response)
                logger.error(
                    "job failed",
                    exc_info=exc if isinstance(exc, InternalError) and exc.__cause__ is not None else None,
                    extra={
                        "event": "job.failed",
                        "status_code": exc.status_code,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "error_type": type(exc).__name__,
                        "error": exc.message,
                    },
                )
                return self._responder.error(output, exc)
            except Exception as exc:
                logger.exception(
                    "job crashed",
                    extra={"event": "job.crashed", "error_type": type(exc).__name__, "error": str(exc)},
                )
                return self._responder.internal_error(output, f"unexpected error: {exc}")

            output.response.update(response)
            logger.info(
                "job succeeded",
                extra={
                    "event": "job.succeeded",
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
            return self._responder.ok(output, message or DEFAULT_SUCCESS_MESSAGE)

    def _execute(
        self,
        job_id: str,
        function: str,
        job_input: JobInput,
        transform: Transform,
        response: dict[str, Any],
        cancel_event: threading.Event,
    ) -> str | None:
        with ExitStack() as stack:
            try:
                workspace = stack.enter_context(self._workspace_manager.scoped(job_id))
                input_path = workspace.input_path(derive_filename(job_input.source.key))
                input_path.touch()
            except OSError as exc:
                raise InternalError(f"unable to create input file: {exc}") from exc

            destination = job_input.destination if job_input.wants_upload() else None
            output_path = None
            if destination is not None:
                output_path = workspace.output_path(derive_filename(destination.key))

            self._storage.fetch(job_input.source, input_path, cancel_event=cancel_event)
            self._raise_if_cancelled(cancel_event, "fetch")

            if output_path is not None:
                # 先删掉可能残留的旧产物，避免把上次结果误当作本次输出上传。
                output_path.unlink(missing_ok=True)

            ctx = JobContext(
                job_id=job_id,
                function=function,
                job_input=job_input,
                input_path=input_path,
                output_path=output_path,
                response=response,
                cancel_event=cancel_event,
            )
            try:
                message = transform(ctx)
            except (BadRequestError, InternalError):
                raise
            except Exception as exc:
                # HTTPError、RequestBuildError 等出站错误一律按 500 处理。
                raise TransformError(f"{function} failed: {exc}") from exc
            self._raise_if_cancelled(cancel_event, function)

            if destination is not None and output_path is not None:
                if not output_path.is_file():
                    raise TransformError(f"{function} produced no output file")
                self._storage.store(destination, output_path, cancel_event=cancel_event)
            return message

    @staticmethod
    def _raise_if_cancelled(cancel_event: threading.Event, step: str) -> None:
        if cancel_event.is_set():
            raise JobTimeoutError(f"job cancelled after {step}")
