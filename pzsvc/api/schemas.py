"""API 报文模型定义：平台注册、网关作业与状态上报，以及本服务的辅助接口响应。"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pzsvc.domain.enums import JobStatus


class ResourceMetadata(BaseModel):
    """服务注册元数据，可选字段为空时不出现在报文中。"""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    url: str
    method: str | None = None
    request_mime_type: str | None = Field(default=None, alias="requestMimeType")
    response_mime_type: str | None = Field(default=None, alias="responseMimeType")
    params: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RegisterServiceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    resource_id: str = Field(alias="resourceId")


class GatewayJobResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    job_id: str = Field(alias="jobId")


class StatusUpdate(BaseModel):
    status: JobStatus


class FunctionListResponse(BaseModel):
    functions: list[str]
