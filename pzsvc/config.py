"""全局配置加载模块：从环境变量构建运行参数并提供缓存访问。"""

from __future__ import annotations

import errno
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _csv_to_list(value: str) -> list[str]:
    """将逗号分隔字符串转换为去空白列表。"""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """服务运行配置对象，从 PZSVC_ 前缀环境变量读取并提供类型化访问。"""
    model_config = SettingsConfigDict(
        env_prefix="PZSVC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "pzsvc"
    environment: str = "dev"

    log_level: str = "INFO"
    log_dir: Path | None = None
    log_redaction_mode: str = "standard"
    log_payload_preview_chars: int = 2000
    log_max_bytes: int = 20 * 1024 * 1024
    log_backup_count: int = 5
    log_debug_modules: str = ""
    log_requests: bool = False

    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None

    work_root: Path = Field(default=Path("./data/pzsvc-work"))
    job_timeout_seconds: float = 15 * 60

    platform_base_url: str = "http://pz-servicecontroller.cf.piazzageo.io"
    platform_registry_path: str = "/servicecontroller/registerService"
    platform_gateway_job_path: str = "/job"
    platform_request_timeout_seconds: float = 30
    # 内部/测试环境证书多为自签名，生产部署应显式开启校验。
    platform_tls_verify: bool = False
    platform_auth: str | None = None
    platform_auth_scheme: str = "Basic"
    platform_username: str | None = None
    platform_password: str | None = None
    platform_api_key: str | None = None
    # registry: 直接调用 servicecontroller；gateway: 通过网关提交 register-service 作业。
    platform_registration_mode: str = "registry"

    job_manager_url: str | None = None

    service_name: str = "pzsvc"
    service_description: str = "Point cloud processing service"
    service_url: str = ""
    service_method: str = "POST"
    service_request_mime_type: str = "application/json"
    service_response_mime_type: str = "application/json"
    service_params: str = ""
    register_on_startup: bool = False

    def log_debug_modules_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_modules)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """构建并缓存 Settings，同时确保工作根目录可写。"""
    settings = Settings()
    # 相对路径统一按当前工作目录解析，避免不同启动方式下语义漂移。
    if not settings.work_root.is_absolute():
        settings.work_root = (Path.cwd() / settings.work_root).resolve()
    try:
        settings.work_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        if exc.errno not in {errno.EACCES, errno.EPERM, errno.EROFS}:
            raise
        # 容器只读或权限受限时回退到当前工作目录下的本地路径。
        fallback = (Path.cwd() / "data" / "pzsvc-work").resolve()
        fallback.mkdir(parents=True, exist_ok=True)
        settings.work_root = fallback
    return settings
