"""测试公共桩：内存版 S3 客户端与按临时目录构建的配置。"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

import pytest
from botocore.exceptions import ClientError

from pzsvc.config import Settings

ProgressCallback = Callable[[int], None]


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} error"}}, operation)


class FakeS3Client:
    """只实现 download_file / upload_file 的内存对象存储。

    upload_delay > 0 时上传分 10 块进行，每块之后调用 boto3 风格的 Callback，
    全部完成后对象才可见。
    """

    def __init__(self, objects: dict[tuple[str, str], bytes] | None = None) -> None:
        self.objects: dict[tuple[str, str], bytes] = dict(objects or {})
        self.downloads: list[tuple[str, str, str]] = []
        self.uploads: list[tuple[str, str, str]] = []
        self.upload_error: Exception | None = None
        self.upload_delay: float = 0.0

    def download_file(self, bucket: str, key: str, filename: str, Callback: ProgressCallback | None = None) -> None:
        self.downloads.append((bucket, key, filename))
        if (bucket, key) not in self.objects:
            raise _client_error("404", "HeadObject")
        data = self.objects[(bucket, key)]
        if Callback is not None:
            Callback(len(data))
        Path(filename).write_bytes(data)

    def upload_file(self, filename: str, bucket: str, key: str, Callback: ProgressCallback | None = None) -> None:
        self.uploads.append((filename, bucket, key))
        if self.upload_error is not None:
            raise self.upload_error
        data = Path(filename).read_bytes()
        for _ in range(10):
            time.sleep(self.upload_delay / 10)
            if Callback is not None:
                Callback(len(data) // 10)
        self.objects[(bucket, key)] = data


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        work_root=tmp_path / "work",
        job_timeout_seconds=5,
        platform_base_url="https://api.example.com",
        job_manager_url=None,
    )
