"""ASGI entry point for the sleep telemetry service.

``create_app`` assembles routes, request tagging, problem+json handlers and
the Prometheus mount. Settings are already validated by the time this module
imports shared.config.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config import settings
from shared.exceptions import ProblemDetailError
from shared.logging import configure_logging
from shared.metrics import create_metrics_app
from shared.middleware import (
    RequestIdMiddleware,
    http_exception_handler,
    problem_detail_handler,
    request_validation_handler,
)
from sleeptracker.api import router as sleeptracker_router
from sleeptracker.decoders.factory import supported_sources

logger = structlog.get_logger()

PROBLEM_HANDLERS = {
    ProblemDetailError: problem_detail_handler,
    RequestValidationError: request_validation_handler,
    StarletteHTTPException: http_exception_handler,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(json_output=settings.log_json, level=settings.log_level)
    logger.info(
        "app_starting",
        sources=supported_sources(),
        ble_byte_order=settings.ble_byte_order,
        api_version=settings.api_version,
    )
    yield
    logger.info("app_shutting_down")


def create_app() -> FastAPI:
    application = FastAPI(
        title="Sleep Telemetry Core API",
        description=(
            "Decodes raw sleep telemetry from BLE wearables and health platforms "
            "(Samsung Health, Health Connect, Apple Health, manual import), assembles "
            "one session per night and scores it."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    application.add_middleware(RequestIdMiddleware)
    for exc_type, handler in PROBLEM_HANDLERS.items():
        application.add_exception_handler(exc_type, handler)

    application.include_router(sleeptracker_router)
    application.mount("/metrics", create_metrics_app())

    @application.get("/health")
    async def health():
        return {"status": "ok"}

    return application


app = create_app()
