"""工作区管理器：按作业创建独立临时目录，并在任意退出路径上清理。"""

from __future__ import annotations

import hashlib
import logging
import re
import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

FILENAME_SAFE_RE = re.compile(r"[^a-zA-Z0-9._-]+")


def sha256_file(path: Path) -> str:
    """流式计算文件 SHA-256 摘要。"""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        # 点云文件动辄数 GB，分块读取避免内存峰值。
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def sanitize_filename(filename: str, fallback: str) -> str:
    """清洗文件名，移除潜在非法字符；清洗后为空或仅含点号时使用 fallback。"""
    clean_name = FILENAME_SAFE_RE.sub("_", filename.strip())
    if not clean_name.strip("."):
        return fallback
    return clean_name


@dataclass(slots=True)
class Workspace:
    """单个作业的工作目录。"""
    job_id: str
    root: Path

    @property
    def inputs_dir(self) -> Path:
        return self.root / "inputs"

    @property
    def outputs_dir(self) -> Path:
        return self.root / "outputs"

    def input_path(self, filename: str) -> Path:
        return self.inputs_dir / sanitize_filename(filename, "input.bin")

    def output_path(self, filename: str) -> Path:
        return self.outputs_dir / sanitize_filename(filename, "output.bin")


class WorkspaceManager:
    """工作区文件管理器；目录名来自请求级唯一 job_id，不依赖存储 key。"""
    def __init__(self, work_root: Path) -> None:
        self._work_root = work_root

    def workspace_dir(self, job_id: str) -> Path:
        return self._work_root / job_id

    def create_workspace(self, job_id: str) -> Workspace:
        """创建作业执行所需的标准目录结构。"""
        root = self.workspace_dir(job_id)
        for segment in ("inputs", "outputs"):
            (root / segment).mkdir(parents=True, exist_ok=True)
        return Workspace(job_id=job_id, root=root)

    def remove_workspace(self, workspace: Workspace) -> None:
        shutil.rmtree(workspace.root, ignore_errors=True)
        logger.debug(
            "workspace removed",
            extra={"event": "workspace.removed", "payload_preview": {"root": str(workspace.root)}},
        )

    @contextmanager
    def scoped(self, job_id: str) -> Iterator[Workspace]:
        """创建工作区并保证退出时删除，包括异常提前返回。"""
        workspace = self.create_workspace(job_id)
        try:
            yield workspace
        finally:
            self.remove_workspace(workspace)
