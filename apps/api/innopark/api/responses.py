from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Generic, TypeVar

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from innopark.context import get_correlation_id
from innopark.core.config import get_settings
from innopark.core.errors import CRMError


T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T | None = None
    message: str | None = None


@dataclass
class ErrorEnvelope:
    error: str
    code: str
    correlation_id: str | None
    success: bool = False


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = asdict(ErrorEnvelope(error=message, code=code, correlation_id=correlation_id))
    if details is not None and get_settings().expose_error_details:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def crm_error_response(request: Request, exc: CRMError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )
