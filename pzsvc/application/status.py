"""作业状态上报：尽力而为，失败只记日志，不影响主响应。"""

from __future__ import annotations

import logging

import httpx

from pzsvc.domain.enums import JobStatus
from pzsvc.domain.errors import ServiceError
from pzsvc.infra.logging.context import bind_log_context
from pzsvc.infra.platform.client import PlatformClient

logger = logging.getLogger(__name__)


class StatusReporter:
    """作业状态上报器；未配置 job_manager_url 时只记录状态变化。"""
    def __init__(self, *, client: PlatformClient | None, job_manager_url: str | None) -> None:
        self._client = client
        self._job_manager_url = job_manager_url

    def report(self, status: JobStatus, *, request_id: str | None = None, job_id: str | None = None) -> bool:
        """上报状态，返回是否成功送达 JobManager。"""
        with bind_log_context(request_id=request_id, job_id=job_id):
            logger.info(
                "setting job status to %s",
                status.value,
                extra={"event": "job.status.changed", "payload_preview": {"status": status.value}},
            )
            if self._client is None or not self._job_manager_url:
                return False
            try:
                self._client.report_status(self._job_manager_url, status)
            except (ServiceError, httpx.HTTPError) as exc:
                logger.warning(
                    "job status report failed",
                    extra={
                        "event": "job.status.report.failed",
                        "external_service": "jobmanager",
                        "op": "jobmanager.update",
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                return False
            return True
