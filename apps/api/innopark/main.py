from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

from innopark.api.responses import crm_error_response, error_response
from innopark.api.routes import router as api_router
from innopark.core.config import get_settings
from innopark.core.context import RequestContextMiddleware
from innopark.core.errors import CRMError
from innopark.core.events import WILDCARD, InternalEvent, event_bus
from innopark.logging import configure_logging
from innopark.middleware.correlation_id import CorrelationIdMiddleware
from innopark.middleware.request_logging import RequestLoggingMiddleware
from innopark.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("innopark.lifecycle")
_subscriptions_registered = False


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_domain_event(event: InternalEvent) -> None:
    company_id = event.payload.get("company_id") if isinstance(event.payload, dict) else None
    logger.debug("domain_event", extra={"event_name": event.name, "company_id": company_id})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        event_bus.subscribe(WILDCARD, _on_domain_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


app = FastAPI(title="Innopark CRM API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(CRMError)
async def _crm_error_handler(request: Request, exc: CRMError):
    return crm_error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        status_code=400,
        code="validation_error",
        message="invalid request",
        details=jsonable_encoder(exc.errors()),
    )


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(request, status_code=exc.status_code, code="http_error", message=str(exc.detail))


settings = get_settings()
if settings.otel_enabled:
    setup_otel("api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
