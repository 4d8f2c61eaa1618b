"""HTTP route handlers for the summarization API."""

from __future__ import annotations

from typing import Any, Dict, Type

import orjson
from fastapi import APIRouter, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from summarize_this.config import Settings
from summarize_this.errors import PayloadTooLarge, ValidationFailed
from summarize_this.pipeline.coordinator import PipelineCoordinator

from .schemas import BalanceModel, ErrorModel, GrantRequestModel, SummarizeRequestModel

router = APIRouter()

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorModel},
    status.HTTP_402_PAYMENT_REQUIRED: {"model": ErrorModel},
    status.HTTP_409_CONFLICT: {"model": ErrorModel},
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorModel},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorModel},
}


def get_coordinator(http_request: Request) -> PipelineCoordinator:
    return http_request.app.state.coordinator


def get_app_settings(http_request: Request) -> Settings:
    return http_request.app.state.settings


async def _load_request_model(
    http_request: Request, model_cls: Type[BaseModel], settings: Settings
) -> BaseModel:
    header_length = http_request.headers.get("content-length")
    if header_length:
        try:
            content_length = int(header_length)
        except ValueError:
            content_length = None
        else:
            if content_length > settings.max_body_bytes:
                raise PayloadTooLarge(settings.max_body_bytes)

    body_bytes = await http_request.body()
    if body_bytes and len(body_bytes) > settings.max_body_bytes:
        raise PayloadTooLarge(settings.max_body_bytes)

    if not body_bytes:
        data: Dict[str, Any] = {}
    else:
        try:
            data = orjson.loads(body_bytes)
        except orjson.JSONDecodeError as exc:
            raise ValidationFailed(f"Invalid JSON body: {exc}") from exc

    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


async def load_summarize_request(http_request: Request) -> SummarizeRequestModel:
    settings = get_app_settings(http_request)
    return await _load_request_model(http_request, SummarizeRequestModel, settings)


async def load_grant_request(http_request: Request) -> GrantRequestModel:
    settings = get_app_settings(http_request)
    return await _load_request_model(http_request, GrantRequestModel, settings)


@router.post("/v1/summarize", responses=ERROR_RESPONSES)
async def summarize_endpoint(
    summarize_request: SummarizeRequestModel = Depends(load_summarize_request),
    coordinator: PipelineCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    response = await coordinator.submit(summarize_request.to_domain())
    status_code = (
        status.HTTP_200_OK if response.state == "completed" else status.HTTP_202_ACCEPTED
    )
    return JSONResponse(status_code=status_code, content=response.to_dict())


@router.get(
    "/v1/summarize/{request_id}",
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorModel}},
)
async def status_endpoint(
    request_id: str,
    coordinator: PipelineCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    job_status = await coordinator.status(request_id)
    return job_status.to_dict()


@router.delete("/v1/summarize/{request_id}")
async def cancel_endpoint(
    request_id: str,
    coordinator: PipelineCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    job_status = await coordinator.cancel(request_id)
    return job_status.to_dict()


@router.get("/v1/credits/{user_id}", response_model=BalanceModel)
async def balance_endpoint(
    user_id: str,
    coordinator: PipelineCoordinator = Depends(get_coordinator),
) -> BalanceModel:
    balance = await coordinator.balance(user_id)
    return BalanceModel(**balance.to_dict())


@router.post("/v1/credits/{user_id}/grants", response_model=BalanceModel)
async def grant_endpoint(
    user_id: str,
    grant_request: GrantRequestModel = Depends(load_grant_request),
    coordinator: PipelineCoordinator = Depends(get_coordinator),
) -> BalanceModel:
    balance = await coordinator.grant(user_id, grant_request.amount, grant_request.reason)
    return BalanceModel(**balance.to_dict())


@router.get("/v1/methods")
async def methods_endpoint(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    return {"methods": coordinator.methods()}
