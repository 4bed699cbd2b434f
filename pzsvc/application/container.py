"""依赖容器模块：启动阶段一次性构建存储、请求工厂、派发器与包装器，并通过 app.state 注入处理器。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from pzsvc.api.responses import Responder
from pzsvc.application.status import StatusReporter
from pzsvc.application.wrapper import JobWrapper
from pzsvc.config import Settings
from pzsvc.domain.functions.registry import FunctionRegistry
from pzsvc.infra.http.dispatcher import RequestDispatcher
from pzsvc.infra.http.factory import RequestFactory, build_request_factory
from pzsvc.infra.platform.client import PlatformClient
from pzsvc.infra.storage.gateway import StorageGateway, build_s3_client
from pzsvc.infra.storage.workspace import WorkspaceManager


@dataclass(slots=True)
class ServiceContainer:
    """进程级依赖集合；构建完成后只读。"""
    settings: Settings
    registry: FunctionRegistry
    request_factory: RequestFactory
    dispatcher: RequestDispatcher
    platform_client: PlatformClient
    storage: StorageGateway
    workspace_manager: WorkspaceManager
    reporter: StatusReporter
    responder: Responder
    wrapper: JobWrapper

    def close(self) -> None:
        """关闭共享 HTTP 连接池。"""
        self.dispatcher.close()


def build_container(
    settings: Settings,
    *,
    registry: FunctionRegistry | None = None,
    s3_client: Any | None = None,
    http_transport: httpx.BaseTransport | None = None,
    request_factory: RequestFactory | None = None,
) -> ServiceContainer:
    """按配置组装全部依赖；s3_client/http_transport 供测试替换外部服务。"""
    factory = request_factory or build_request_factory(settings)
    dispatcher = RequestDispatcher(
        verify_tls=settings.platform_tls_verify,
        timeout_seconds=settings.platform_request_timeout_seconds,
        transport=http_transport,
    )
    platform_client = PlatformClient(
        factory=factory,
        dispatcher=dispatcher,
        registry_path=settings.platform_registry_path,
        gateway_job_path=settings.platform_gateway_job_path,
        api_key=settings.platform_api_key,
    )
    storage = StorageGateway(s3_client if s3_client is not None else build_s3_client(settings))
    workspace_manager = WorkspaceManager(settings.work_root)
    reporter = StatusReporter(client=platform_client, job_manager_url=settings.job_manager_url)
    responder = Responder(reporter)
    wrapper = JobWrapper(
        storage=storage,
        workspace_manager=workspace_manager,
        responder=responder,
        timeout_seconds=settings.job_timeout_seconds,
    )
    return ServiceContainer(
        settings=settings,
        registry=registry or FunctionRegistry(),
        request_factory=factory,
        dispatcher=dispatcher,
        platform_client=platform_client,
        storage=storage,
        workspace_manager=workspace_manager,
        reporter=reporter,
        responder=responder,
        wrapper=wrapper,
    )
