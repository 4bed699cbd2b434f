"""出站请求派发：共享传输层发送请求，并把原始响应交给调用方提供的处理器。"""

from __future__ import annotations

import logging
import threading
import time
from email.message import Message
from pathlib import Path
from typing import Callable, Generic, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from pzsvc.domain.errors import HTTPError
from pzsvc.infra.http.factory import OutboundRequest
from pzsvc.infra.storage.workspace import sanitize_filename

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

ResponseHandler = Callable[[httpx.Response | None, Exception | None], T]


class RequestDispatcher:
    """请求派发器，底层 httpx.Client 首次使用时创建并在进程内共享。"""
    def __init__(
        self,
        *,
        verify_tls: bool,
        timeout_seconds: float = 30,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._verify_tls = verify_tls
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.Client | None = None
        self._lock = threading.Lock()

    def _client_or_create(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                if not self._verify_tls:
                    logger.warning(
                        "tls certificate verification disabled for outbound requests",
                        extra={"event": "http.outbound.tls_verify_disabled"},
                    )
                self._client = httpx.Client(
                    verify=self._verify_tls,
                    timeout=httpx.Timeout(self._timeout_seconds),
                    transport=self._transport,
                    limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                )
            return self._client

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def dispatch(self, request: OutboundRequest, handler: ResponseHandler[T]) -> T:
        """发送请求并把 (response, transport_error) 交给 handler，返回 handler 的结果。"""
        request.raise_for_errors()
        client = self._client_or_create()
        op = f"{request.method} {request.url}"
        started = time.perf_counter()
        try:
            built = client.build_request(
                request.method,
                request.url,
                headers=request.headers,
                json=request.json_body,
                data=request.data,
                files=request.files,
            )
            response = client.send(built)
        except httpx.HTTPError as exc:
            logger.error(
                "outbound request failed",
                extra={
                    "event": "http.outbound.failed",
                    "external_service": "platform",
                    "op": op,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return handler(None, exc)
        logger.info(
            "outbound request completed",
            extra={
                "event": "http.outbound.completed",
                "external_service": "platform",
                "op": op,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "status_code": response.status_code,
            },
        )
        return handler(response, None)


def _require_response(response: httpx.Response | None, error: Exception | None) -> httpx.Response:
    if error is not None:
        raise error
    if response is None:
        raise HTTPError(502, "no response received")
    return response


class JSONResponseHandler(Generic[ModelT]):
    """把 2xx JSON 响应解析为指定模型；其他情况抛出 HTTPError。"""
    def __init__(self, model: type[ModelT]) -> None:
        self._model = model

    def __call__(self, response: httpx.Response | None, error: Exception | None) -> ModelT:
        response = _require_response(response, error)
        if not response.is_success:
            raise HTTPError(response.status_code, response.text)
        if not response.content:
            raise HTTPError(response.status_code, "no JSON body returned")
        try:
            return self._model.model_validate_json(response.content)
        except ValidationError as exc:
            raise HTTPError(response.status_code, f"unable to parse {self._model.__name__}: {exc}") from exc


class ExpectSuccessHandler:
    """只关心状态码的处理器，响应体被忽略。"""
    def __call__(self, response: httpx.Response | None, error: Exception | None) -> int:
        response = _require_response(response, error)
        if not response.is_success:
            raise HTTPError(response.status_code, response.text)
        return response.status_code


def parse_disposition_filename(value: str | None) -> str | None:
    """从 Content-Disposition 中提取 filename，缺失或无法解析时返回 None。"""
    if not value or not value.strip():
        return None
    message = Message()
    message["content-disposition"] = value
    filename = message.get_filename()
    return filename or None


class DownloadHandler:
    """下载处理器：按 Content-Disposition 文件名落盘响应体。"""
    def __init__(self, target_dir: Path) -> None:
        self._target_dir = target_dir
        self.file_path: Path | None = None

    def __call__(self, response: httpx.Response | None, error: Exception | None) -> Path:
        response = _require_response(response, error)
        filename = parse_disposition_filename(response.headers.get("Content-Disposition"))
        if filename is None:
            # 缺少文件名通常意味着响应体本身就是错误信息。
            raise HTTPError(406, response.text)
        if not response.is_success:
            raise HTTPError(response.status_code, response.text)
        self._target_dir.mkdir(parents=True, exist_ok=True)
        target = self._target_dir / sanitize_filename(Path(filename).name, "download.bin")
        target.write_bytes(response.content)
        self.file_path = target
        return target
