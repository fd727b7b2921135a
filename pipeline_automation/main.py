import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import logging

from pipeline_automation.api.v1.router import router as api_v1_router
from pipeline_automation.core.config import settings as app_settings
from pipeline_automation.core.database import AsyncSessionLocal
from pipeline_automation.core.exceptions import (
    InvalidActionConfigError,
    LogWriteError,
    RuleNotFoundError,
)
from pipeline_automation.core.rate_limit import limiter
from pipeline_automation.dependencies import build_automation_engine, get_redis_client
from pipeline_automation.services.signal_consumer import start_signal_consumer_loop

# Configure logging
logging.basicConfig(level=app_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared engine and manage the optional queue consumer."""
    redis_client = await get_redis_client()
    engine = build_automation_engine(AsyncSessionLocal, redis_client)
    app.state.redis = redis_client
    app.state.automation_engine = engine

    consumer_task = None
    if app_settings.AUTOMATION_SIGNAL_CONSUMER_ENABLED:
        if redis_client is None:
            logger.warning("Signal consumer enabled but Redis is unavailable")
        else:
            consumer_task = asyncio.create_task(
                start_signal_consumer_loop(
                    redis_client,
                    engine,
                    app_settings.AUTOMATION_SIGNAL_QUEUE_KEY,
                    app_settings.AUTOMATION_SIGNAL_POLL_TIMEOUT_SECONDS,
                )
            )
            logger.info("Background signal consumer task scheduled")
    yield
    # Shutdown: cancel the consumer, then drop the Redis connection
    if consumer_task is not None:
        consumer_task.cancel()
        try:
            await consumer_task
        except asyncio.CancelledError:
            logger.info("Background signal consumer task stopped")
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(
    title="Pipeline Automation Engine",
    description="Turns call-intelligence signals into CRM pipeline actions",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware – restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(RuleNotFoundError)
async def rule_not_found_handler(request: Request, exc: RuleNotFoundError):
    logger.warning("Automation rule not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "rule_not_found"},
    )


@app.exception_handler(InvalidActionConfigError)
async def invalid_action_config_handler(
    request: Request, exc: InvalidActionConfigError
):
    logger.warning("Invalid action config: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_action_config"},
    )


@app.exception_handler(LogWriteError)
async def log_write_error_handler(request: Request, exc: LogWriteError):
    logger.error("Execution log write failed: %s", exc.detail)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.detail, "type": "log_write_failed"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
            "type": "validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
