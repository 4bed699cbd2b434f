"""日志测试：脱敏规则、预览截断与上下文字段注入。"""

import json
import logging
from pathlib import Path

from pzsvc.config import Settings
from pzsvc.infra.logging.context import bind_log_context, get_log_context
from pzsvc.infra.logging.setup import StructuredJsonFormatter, _build_handlers, redact_text, render_payload_preview


def test_redact_text_masks_credentials() -> None:
    text = "Authorization: Basic dXNlcjpwYXNz password=hunter2 apiKey=abc123"
    redacted = redact_text(text, "standard")
    assert "dXNlcjpwYXNz" not in redacted
    assert "hunter2" not in redacted
    assert "abc123" not in redacted
    assert redact_text(text, "off") == text


def test_payload_preview_is_truncated() -> None:
    preview = render_payload_preview({"key": "x" * 50}, max_chars=20, redaction_mode="standard")
    assert preview is not None
    assert preview.endswith("...(truncated)")
    assert render_payload_preview(None, max_chars=20, redaction_mode="standard") is None


def test_bind_log_context_restores_previous_values() -> None:
    with bind_log_context(request_id="req-1", job_id="job-1"):
        with bind_log_context(job_id="job-2"):
            assert get_log_context()["job_id"] == "job-2"
            assert get_log_context()["request_id"] == "req-1"
        assert get_log_context()["job_id"] == "job-1"
    assert get_log_context() == {"request_id": None, "job_id": None, "function": None}


def test_formatter_emits_context_fields() -> None:
    formatter = StructuredJsonFormatter(
        service="pzsvc",
        process_role="api",
        redaction_mode="standard",
        payload_preview_chars=200,
    )
    record = logging.LogRecord("pzsvc.test", logging.INFO, __file__, 1, "job %s", ("started",), None)
    record.event = "job.started"
    record.duration_ms = 12.5

    with bind_log_context(request_id="req-9", function="copy"):
        entry = json.loads(formatter.format(record))

    assert entry["message"] == "job started"
    assert entry["event"] == "job.started"
    assert entry["request_id"] == "req-9"
    assert entry["function"] == "copy"
    assert entry["duration_ms"] == 12.5
    assert entry["process_role"] == "api"


def test_log_dir_routes_stderr_to_errors_only(tmp_path: Path) -> None:
    """配置 log_dir 后写入 <role>/pzsvc.jsonl，stderr 只保留 ERROR。"""
    formatter = StructuredJsonFormatter(
        service="pzsvc",
        process_role="api",
        redaction_mode="standard",
        payload_preview_chars=200,
    )
    handlers, log_file = _build_handlers(Settings(log_dir=tmp_path), "api", formatter)
    try:
        assert log_file == tmp_path / "api" / "pzsvc.jsonl"
        assert [handler.level for handler in handlers] == [logging.DEBUG, logging.ERROR]
    finally:
        for handler in handlers:
            handler.close()

    handlers, log_file = _build_handlers(Settings(log_dir=None), "api", formatter)
    assert log_file is None
    assert [handler.level for handler in handlers] == [logging.DEBUG]
