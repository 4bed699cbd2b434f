"""API 路由：函数列表与 POST /{function} 作业入口。"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from pzsvc.api.schemas import FunctionListResponse
from pzsvc.application.container import ServiceContainer
from pzsvc.domain.errors import UnknownFunctionError
from pzsvc.domain.models import JobOutput

router = APIRouter()
logger = logging.getLogger(__name__)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


@router.get("/functions", response_model=FunctionListResponse)
def list_functions(container: ServiceContainer = Depends(get_container)) -> FunctionListResponse:
    return FunctionListResponse(functions=container.registry.names())


@router.post("/{function}")
async def run_function(
    function: str,
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> Response:
    """按路径中的函数名执行作业，响应体始终是 JobOutput 信封。"""
    try:
        transform = container.registry.get(function)
    except UnknownFunctionError as exc:
        logger.warning("unknown function requested: %s", function, extra={"event": "job.function.unknown"})
        return container.responder.error(JobOutput(), exc)
    handler = container.wrapper.wrap(transform, function=function)
    return await handler(request)
