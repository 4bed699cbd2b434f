"""对象存储网关：封装 S3 下载/上传并统一错误形态。"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from pzsvc.config import Settings
from pzsvc.domain.errors import StorageError
from pzsvc.domain.models import ObjectRef

logger = logging.getLogger(__name__)


class TransferCancelled(Exception):
    """传输途中收到取消信号。"""


_PROVIDER_ERRORS = (Boto3Error, BotoCoreError, ClientError, OSError, TransferCancelled)


class CancelWatcher:
    """boto3 传输进度回调：每批字节传输后检查取消事件，已取消则抛出 TransferCancelled 中断传输。"""
    def __init__(self, cancel_event: threading.Event) -> None:
        self._cancel_event = cancel_event

    def check(self) -> None:
        if self._cancel_event.is_set():
            raise TransferCancelled("transfer cancelled")

    def __call__(self, bytes_transferred: int) -> None:
        self.check()


def derive_filename(key: str) -> str:
    """取 key 最后一个 / 之后的部分作为文件名；无分隔符时原样返回。"""
    return key.rsplit("/", 1)[-1]


@dataclass(slots=True)
class LocalFile:
    """已落盘对象的本地描述。"""
    path: Path
    size_bytes: int


def build_s3_client(settings: Settings) -> Any:
    kwargs: dict[str, Any] = {"region_name": settings.s3_region}
    if settings.s3_endpoint_url:
        kwargs["endpoint_url"] = settings.s3_endpoint_url
    return boto3.client("s3", **kwargs)


class StorageGateway:
    """S3 存储网关，下载与上传均以本地文件为边界。"""
    def __init__(self, client: Any) -> None:
        self._client = client

    def _check_ref(self, operation: str, ref: ObjectRef) -> None:
        if not ref.bucket or not ref.key:
            raise StorageError(
                operation=operation,
                bucket=ref.bucket,
                key=ref.key,
                cause=ValueError("bucket and key are required"),
            )

    def _fail(self, operation: str, ref: ObjectRef, exc: BaseException, started: float) -> StorageError:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.error(
            "s3 %s failed",
            operation,
            extra={
                "event": f"s3.{operation}.failed",
                "external_service": "s3",
                "op": f"s3.{operation}",
                "duration_ms": duration_ms,
                "error_type": type(exc).__name__,
                "error": str(exc),
                "payload_preview": {"bucket": ref.bucket, "key": ref.key},
            },
        )
        return StorageError(operation=operation, bucket=ref.bucket, key=ref.key, cause=exc)

    def fetch(self, ref: ObjectRef, path: Path, *, cancel_event: threading.Event | None = None) -> LocalFile:
        """下载对象到指定本地路径；cancel_event 置位后中断传输。"""
        self._check_ref("download", ref)
        started = time.perf_counter()
        watcher = CancelWatcher(cancel_event) if cancel_event is not None else None
        try:
            if watcher is not None:
                watcher.check()
            self._client.download_file(ref.bucket, ref.key, str(path), Callback=watcher)
            size_bytes = path.stat().st_size
        except _PROVIDER_ERRORS as exc:
            raise self._fail("download", ref, exc, started) from exc
        logger.info(
            "s3 download completed",
            extra={
                "event": "s3.download.succeeded",
                "external_service": "s3",
                "op": "s3.download",
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "payload_preview": {"bucket": ref.bucket, "key": ref.key, "size_bytes": size_bytes},
            },
        )
        return LocalFile(path=path, size_bytes=size_bytes)

    def store(self, ref: ObjectRef, path: Path, *, cancel_event: threading.Event | None = None) -> None:
        """上传本地文件到指定对象；cancel_event 置位后中断传输，对象不会被发布。"""
        self._check_ref("upload", ref)
        started = time.perf_counter()
        watcher = CancelWatcher(cancel_event) if cancel_event is not None else None
        try:
            if watcher is not None:
                watcher.check()
            self._client.upload_file(str(path), ref.bucket, ref.key, Callback=watcher)
        except _PROVIDER_ERRORS as exc:
            raise self._fail("upload", ref, exc, started) from exc
        logger.info(
            "s3 upload completed",
            extra={
                "event": "s3.upload.succeeded",
                "external_service": "s3",
                "op": "s3.upload",
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "payload_preview": {"bucket": ref.bucket, "key": ref.key},
            },
        )
