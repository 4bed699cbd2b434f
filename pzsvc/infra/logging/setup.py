"""日志初始化：JSON 行格式、队列异步写入、凭据脱敏与按模块放行 DEBUG。"""

from __future__ import annotations

import json
import logging
import logging.config
import re
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import Any

from pzsvc.config import Settings
from pzsvc.infra.logging.context import get_log_context

_listener: QueueListener | None = None

_SENSITIVE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)(authorization[\"']?\s*[:=]\s*[\"']?(?:basic|bearer)\s+)[^\s,;\"']+"), r"\1***"),
    (re.compile(r"(?i)(x-api-key\s*[:=]\s*)[^\s,;]+"), r"\1***"),
    (re.compile(r"(?i)([\"']?api_?key[\"']?\s*[:=]\s*[\"']?)[^\s,;\"']+"), r"\1***"),
    (re.compile(r"(?i)(password\s*[:=]\s*)[^\s,;]+"), r"\1***"),
    (re.compile(r"(?i)(secret\s*[:=]\s*)[^\s,;]+"), r"\1***"),
)

_CONTEXT_KEYS = ("request_id", "job_id", "function")
# 业务代码通过 logger.xxx(extra={...}) 传入的结构化字段，原样输出。
_EXTRA_KEYS = ("event", "external_service", "op", "duration_ms", "status_code", "error_type")

_QUIET_LOGGERS = ("uvicorn.access", "botocore", "boto3", "s3transfer", "urllib3", "httpx", "httpcore")


def redact_text(value: str | None, mode: str) -> str | None:
    """按模式脱敏：off 不处理，standard 屏蔽凭据取值，strict 额外屏蔽敏感字段名之后的内容。"""
    if value is None:
        return None
    text = str(value)
    mode = mode.lower()
    if mode == "off":
        return text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    if mode == "strict":
        text = re.sub(r"(?i)(authorization|password|secret|api_?key)([^,\s}]*)", r"\1=***", text)
    return text


def render_payload_preview(payload: Any, *, max_chars: int, redaction_mode: str) -> str | None:
    """将 payload 序列化为脱敏、截断后的预览文本。"""
    if payload is None:
        return None
    if isinstance(payload, str):
        serialized = payload
    else:
        serialized = json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)
    redacted = redact_text(serialized, redaction_mode) or ""
    if len(redacted) > max_chars:
        return f"{redacted[:max_chars]}...(truncated)"
    return redacted


class DebugRoutingFilter(logging.Filter):
    """低于 min_level 的记录只在 DEBUG 且模块命中 debug_modules 时放行。"""

    def __init__(self, *, min_level: int, debug_modules: set[str]) -> None:
        super().__init__()
        self._min_level = min_level
        self._debug_modules = debug_modules

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self._min_level:
            return True
        if record.levelno != logging.DEBUG:
            return False
        return any(record.name == item or record.name.startswith(f"{item}.") for item in self._debug_modules)


class ContextInjectionFilter(logging.Filter):
    """入队前把 contextvars 固化到 record 上，监听线程读不到调用方的上下文。"""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_log_context()
        for key in _CONTEXT_KEYS:
            if getattr(record, key, None) is None:
                setattr(record, key, ctx.get(key))
        return True


class StructuredJsonFormatter(logging.Formatter):
    """LogRecord -> 单行 JSON。"""

    def __init__(self, *, service: str, process_role: str, redaction_mode: str, payload_preview_chars: int) -> None:
        super().__init__()
        self._service = service
        self._process_role = process_role
        self._redaction_mode = redaction_mode
        self._payload_preview_chars = payload_preview_chars

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self._service,
            "process_role": self._process_role,
            "module": record.name,
        }
        for key in _CONTEXT_KEYS:
            entry[key] = getattr(record, key, None) or ctx.get(key)
        for key in _EXTRA_KEYS:
            entry[key] = getattr(record, key, None)
        entry["message"] = redact_text(record.getMessage(), self._redaction_mode)

        error_text = getattr(record, "error", None)
        if error_text is None and record.exc_info:
            error_text = self.formatException(record.exc_info)
        entry["error"] = redact_text(str(error_text), self._redaction_mode) if error_text is not None else None
        entry["payload_preview"] = render_payload_preview(
            getattr(record, "payload_preview", None),
            max_chars=self._payload_preview_chars,
            redaction_mode=self._redaction_mode,
        )
        return json.dumps(entry, ensure_ascii=False, default=str)


def _build_handlers(settings: Settings, process_role: str, formatter: logging.Formatter) -> tuple[list[logging.Handler], Path | None]:
    """stderr 始终输出；配置 log_dir 时追加 <log_dir>/<role>/pzsvc.jsonl 滚动文件，stderr 降为只输出 ERROR。"""
    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setFormatter(formatter)
    if settings.log_dir is None:
        stderr_handler.setLevel(logging.DEBUG)
        return [stderr_handler], None

    log_root = settings.log_dir if settings.log_dir.is_absolute() else (Path.cwd() / settings.log_dir).resolve()
    log_file = log_root / process_role / "pzsvc.jsonl"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    stderr_handler.setLevel(logging.ERROR)
    return [file_handler, stderr_handler], log_file


def configure_logging(settings: Settings, *, process_role: str) -> Path | None:
    """安装根日志队列与监听器，返回日志文件路径（未落盘时为 None）。"""
    global _listener
    shutdown_logging()

    queue_obj: Queue[logging.LogRecord] = Queue(-1)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "handlers": {"queue": {"class": "logging.handlers.QueueHandler", "queue": queue_obj}},
            "root": {"level": "DEBUG", "handlers": ["queue"]},
        }
    )
    queue_handler = next((item for item in logging.getLogger().handlers if isinstance(item, QueueHandler)), None)
    if queue_handler is None:
        raise RuntimeError("queue logging handler is not configured")
    queue_handler.addFilter(ContextInjectionFilter())
    queue_handler.addFilter(
        DebugRoutingFilter(
            min_level=getattr(logging, settings.log_level.upper(), logging.INFO),
            debug_modules=set(settings.log_debug_modules_list()),
        )
    )

    formatter = StructuredJsonFormatter(
        service=settings.app_name,
        process_role=process_role,
        redaction_mode=settings.log_redaction_mode,
        payload_preview_chars=settings.log_payload_preview_chars,
    )
    handlers, log_file = _build_handlers(settings, process_role, formatter)
    _listener = QueueListener(queue_obj, *handlers, respect_handler_level=True)
    _listener.start()

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file


def shutdown_logging() -> None:
    """停止监听器并关闭其句柄。"""
    global _listener
    if _listener is None:
        return
    try:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
    finally:
        _listener = None
