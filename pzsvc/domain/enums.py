"""领域枚举定义：统一作业状态取值。"""

from __future__ import annotations

from enum import Enum


class JobStatus(str, Enum):
    """作业生命周期状态枚举，字符串取值即 JobManager 协议取值。"""
    submitted = "submitted"
    running = "running"
    success = "success"
    cancelled = "cancelled"
    error = "error"
    fail = "fail"

    def __str__(self) -> str:
        return self.value
