"""出站请求工厂：按注册顺序对新建请求应用装饰器（认证、基础地址、日志）。"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

import httpx

from pzsvc.config import Settings
from pzsvc.domain.errors import ConfigError, RequestBuildError
from pzsvc.infra.logging.setup import render_payload_preview

logger = logging.getLogger(__name__)

_MASKED_HEADERS = {"authorization", "x-api-key", "proxy-authorization"}


@dataclass(slots=True)
class OutboundRequest:
    """待发送请求；装饰器失败记录在 errors 中，由调用方在发送前检查。"""
    method: str
    url: httpx.URL
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    json_body: Any = None
    data: dict[str, Any] | None = None
    files: Any = None
    errors: list[Exception] = field(default_factory=list)
    applied: list[str] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if self.errors:
            raise RequestBuildError(self.errors)


class RequestDecorator(Protocol):
    def decorate(self, request: OutboundRequest) -> None:
        """就地修改请求。"""


@dataclass(frozen=True, slots=True)
class AuthDecorator:
    """注入静态凭据；凭据在启动时一次性解析，运行期不可变。"""
    credential: str
    scheme: str = "Basic"

    def __post_init__(self) -> None:
        if not self.credential:
            raise ConfigError("auth credential must not be empty")

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthDecorator | None:
        """从配置解析凭据；未配置返回 None，配置不完整时立即失败。"""
        if settings.platform_auth:
            return cls(credential=settings.platform_auth, scheme=settings.platform_auth_scheme)
        if settings.platform_username or settings.platform_password:
            if not (settings.platform_username and settings.platform_password):
                raise ConfigError("platform_username and platform_password must be provided together")
            raw = f"{settings.platform_username}:{settings.platform_password}".encode("utf-8")
            return cls(credential=base64.b64encode(raw).decode("ascii"), scheme="Basic")
        return None

    def decorate(self, request: OutboundRequest) -> None:
        request.headers["Authorization"] = f"{self.scheme} {self.credential}"


@dataclass(frozen=True, slots=True)
class BaseURLDecorator:
    """将相对地址按 RFC 3986 规则解析到固定基础地址上。"""
    base_url: str

    def decorate(self, request: OutboundRequest) -> None:
        request.url = httpx.URL(self.base_url).join(request.url)


@dataclass(frozen=True, slots=True)
class LogDecorator:
    """仅记录请求内容，不修改请求。"""
    redaction_mode: str = "standard"
    max_chars: int = 2000

    def decorate(self, request: OutboundRequest) -> None:
        headers = {
            key: ("***" if key.lower() in _MASKED_HEADERS else value)
            for key, value in request.headers.items()
        }
        body = request.json_body if request.json_body is not None else request.data
        logger.info(
            "outbound request %s %s",
            request.method,
            request.url,
            extra={
                "event": "http.outbound.prepared",
                "op": f"{request.method} {request.url}",
                "payload_preview": render_payload_preview(
                    {"method": request.method, "url": str(request.url), "headers": headers, "body": body},
                    max_chars=self.max_chars,
                    redaction_mode=self.redaction_mode,
                ),
            },
        )


class RequestFactory:
    """请求工厂。

    装饰器须在启动阶段、并发派发开始之前注册完毕；运行期并发调用
    add_decorator 不受支持。
    """
    def __init__(self, decorators: Iterable[RequestDecorator] = ()) -> None:
        self._decorators: list[RequestDecorator] = list(decorators)

    @property
    def decorators(self) -> tuple[RequestDecorator, ...]:
        return tuple(self._decorators)

    def add_decorator(self, decorator: RequestDecorator) -> None:
        self._decorators.append(decorator)

    def new_request(
        self,
        method: str,
        relative_url: str,
        *,
        json_body: Any = None,
        data: dict[str, Any] | None = None,
        files: Any = None,
        headers: dict[str, str] | None = None,
    ) -> OutboundRequest:
        """创建请求并依次应用全部装饰器；单个装饰器失败不会中断后续装饰器。"""
        errors: list[Exception] = []
        try:
            url = httpx.URL(relative_url)
        except httpx.InvalidURL as exc:
            url = httpx.URL("")
            errors.append(exc)
        request = OutboundRequest(
            method=method.upper(),
            url=url,
            headers=httpx.Headers(headers or {}),
            json_body=json_body,
            data=data,
            files=files,
            errors=errors,
        )
        for decorator in self._decorators:
            name = type(decorator).__name__
            try:
                decorator.decorate(request)
            except Exception as exc:
                # 日志类装饰器仍需执行，便于定位认证等前序失败。
                request.errors.append(exc)
                logger.warning(
                    "request decorator failed",
                    extra={
                        "event": "http.outbound.decorate.failed",
                        "op": name,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
            request.applied.append(name)
        return request


def build_request_factory(settings: Settings) -> RequestFactory:
    """按配置组装默认装饰链：基础地址 -> 认证 -> 日志。"""
    factory = RequestFactory()
    factory.add_decorator(BaseURLDecorator(settings.platform_base_url))
    auth = AuthDecorator.from_settings(settings)
    if auth is not None:
        factory.add_decorator(auth)
    if settings.log_requests:
        factory.add_decorator(
            LogDecorator(
                redaction_mode=settings.log_redaction_mode,
                max_chars=settings.log_payload_preview_chars,
            )
        )
    return factory
