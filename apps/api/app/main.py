from contextlib import asynccontextmanager
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy.exc import SQLAlchemyError

from app.api.routes import router as api_router
from app.context import get_correlation_id
from app.core.config import get_settings
from app.core.database import engine
from app.core.events import DomainEvent, event_bus
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("app.lifecycle")

_subscription_event_types = [
    "subscription.created",
    "subscription.updated",
    "subscription.deleted",
]


def _on_subscription_event(event: DomainEvent) -> None:
    logger.debug(
        "domain_event",
        extra={
            "event_name": event.name,
            "subscription_id": event.payload.get("subscription_id"),
            "user_id": event.payload.get("user_id"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    for event_name in _subscription_event_types:
        event_bus.subscribe(event_name, _on_subscription_event)
    logger.info("system.started", extra={"event_name": "system.started"})
    yield
    logger.info("system.stopping", extra={"event_name": "system.stopping"})
    engine.dispose()


app = FastAPI(title="Subscription Tracker API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    logger.error("db.error", exc_info=exc, extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(
        status_code=500,
        content={
            "code": "INTERNAL_ERROR",
            "message": "internal error",
            "details": None,
            "correlation_id": correlation_id,
        },
    )


setup_otel(get_settings())

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())


def run() -> None:
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.api_host, port=settings.api_port, log_config=None)
