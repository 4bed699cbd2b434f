"""FastAPI 应用入口：初始化生命周期、请求 ID 中间件、健康检查与函数路由。

启动方式：uvicorn --factory pzsvc.main:create_app
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request

from pzsvc.api.router import router
from pzsvc.application.container import ServiceContainer, build_container
from pzsvc.config import Settings, get_settings
from pzsvc.domain.errors import ConfigError, ServiceError
from pzsvc.domain.functions.registry import FunctionRegistry
from pzsvc.infra.logging.context import bind_log_context
from pzsvc.infra.logging.setup import configure_logging, shutdown_logging
from pzsvc.infra.platform.client import resource_metadata_from_settings

logger = logging.getLogger(__name__)


def register_service(container: ServiceContainer) -> str | None:
    """按配置向平台注册本服务；失败只记录日志，不阻断启动。"""
    settings = container.settings
    metadata = resource_metadata_from_settings(settings)
    try:
        if settings.platform_registration_mode == "gateway":
            return container.platform_client.register_service_via_gateway(metadata)
        return container.platform_client.register_service(metadata)
    except (ServiceError, ConfigError, httpx.HTTPError) as exc:
        logger.error(
            "service registration failed",
            extra={
                "event": "platform.register.failed",
                "external_service": "servicecontroller",
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return None


def create_app(
    settings: Settings | None = None,
    *,
    registry: FunctionRegistry | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """构建应用；容器在此一次性创建并挂到 app.state，处理器从请求上下文取用。"""
    if container is None:
        settings = settings or get_settings()
        container = build_container(settings, registry=registry)
    settings = container.settings

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        """应用生命周期：启动时配置日志并按需注册服务，关闭时释放连接池。"""
        configure_logging(settings, process_role="api")
        logger.info("api startup begin", extra={"event": "api.startup.started"})
        if settings.register_on_startup:
            await asyncio.to_thread(register_service, container)
        logger.info(
            "api startup ready",
            extra={"event": "api.startup.succeeded", "payload_preview": {"functions": container.registry.names()}},
        )
        try:
            yield
        finally:
            logger.info("api shutdown begin", extra={"event": "api.shutdown.started"})
            container.close()
            shutdown_logging()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.container = container

    @app.middleware("http")
    async def attach_request_id(request: Request, call_next):
        """透传或生成 X-Request-Id，并回写到响应头。"""
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        started = time.perf_counter()
        with bind_log_context(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = round((time.perf_counter() - started) * 1000, 2)
                logger.exception(
                    "http request failed",
                    extra={
                        "event": "http.request.failed",
                        "op": f"{request.method} {request.url.path}",
                        "duration_ms": duration_ms,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                raise
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.info(
                "http request completed",
                extra={
                    "event": "http.request.completed",
                    "op": f"{request.method} {request.url.path}",
                    "duration_ms": duration_ms,
                    "status_code": response.status_code,
                },
            )
        response.headers["X-Request-Id"] = request_id
        return response

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(router)
    return app
