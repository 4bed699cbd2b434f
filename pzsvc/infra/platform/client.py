"""平台服务客户端：服务注册、网关注册作业、作业状态上报与文件下载。"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pzsvc.api.schemas import GatewayJobResponse, RegisterServiceResponse, ResourceMetadata, StatusUpdate
from pzsvc.config import Settings
from pzsvc.domain.enums import JobStatus
from pzsvc.domain.errors import ConfigError
from pzsvc.infra.http.dispatcher import DownloadHandler, ExpectSuccessHandler, JSONResponseHandler, RequestDispatcher
from pzsvc.infra.http.factory import RequestFactory

logger = logging.getLogger(__name__)


def resource_metadata_from_settings(settings: Settings) -> ResourceMetadata:
    """由配置构造注册元数据，空字符串视为未设置。"""
    return ResourceMetadata(
        name=settings.service_name,
        description=settings.service_description,
        url=settings.service_url,
        method=settings.service_method or None,
        request_mime_type=settings.service_request_mime_type or None,
        response_mime_type=settings.service_response_mime_type or None,
        params=settings.service_params or None,
    )


class PlatformClient:
    """平台 HTTP 客户端，所有请求都经过 RequestFactory 装饰链。"""
    def __init__(
        self,
        *,
        factory: RequestFactory,
        dispatcher: RequestDispatcher,
        registry_path: str,
        gateway_job_path: str,
        api_key: str | None = None,
    ) -> None:
        self._factory = factory
        self._dispatcher = dispatcher
        self._registry_path = registry_path
        self._gateway_job_path = gateway_job_path
        self._api_key = api_key

    def register_service(self, metadata: ResourceMetadata) -> str:
        """向服务注册中心注册本服务，返回 resourceId。"""
        request = self._factory.new_request("POST", self._registry_path, json_body=metadata.to_wire())
        result = self._dispatcher.dispatch(request, JSONResponseHandler(RegisterServiceResponse))
        logger.info(
            "service registered",
            extra={
                "event": "platform.register.succeeded",
                "external_service": "servicecontroller",
                "payload_preview": {"name": metadata.name, "resource_id": result.resource_id},
            },
        )
        return result.resource_id

    def register_service_via_gateway(self, metadata: ResourceMetadata) -> str:
        """通过网关提交 register-service 作业，返回网关 jobId。"""
        if not self._api_key:
            raise ConfigError("platform_api_key is required for gateway registration")
        body = json.dumps(
            {
                "apiKey": self._api_key,
                "jobType": {"type": "register-service", "data": metadata.to_wire()},
            }
        )
        # 网关只接受 multipart 表单中的单个 body 字段。
        request = self._factory.new_request(
            "POST",
            self._gateway_job_path,
            files={"body": (None, body)},
        )
        result = self._dispatcher.dispatch(request, JSONResponseHandler(GatewayJobResponse))
        logger.info(
            "gateway job accepted",
            extra={
                "event": "platform.gateway.register.succeeded",
                "external_service": "gateway",
                "payload_preview": {"type": result.type, "job_id": result.job_id},
            },
        )
        return result.job_id

    def report_status(self, job_url: str, status: JobStatus) -> None:
        """向 JobManager 上报作业状态：POST <job_url>/manager。"""
        url = f"{job_url.rstrip('/')}/manager"
        request = self._factory.new_request(
            "POST",
            url,
            json_body=StatusUpdate(status=status).model_dump(mode="json"),
        )
        self._dispatcher.dispatch(request, ExpectSuccessHandler())

    def download(self, relative_url: str, target_dir: Path) -> Path:
        """下载平台文件到 target_dir，返回落盘路径。"""
        request = self._factory.new_request("GET", relative_url)
        return self._dispatcher.dispatch(request, DownloadHandler(target_dir))
