from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import List, Optional
import logging
import time

import uvicorn

from .config import Settings, settings as default_settings
from .core.notifier import NotificationRouter
from .core.registry import ConnectionRegistry
from .errors import InternalServerError, RelayError, UnknownRoute, ValidationError
from .routers import api, socket

# Logging
logging.basicConfig(level=default_settings.log_level.upper(), format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def error_response(error: RelayError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def describe_body_errors(errors: List[dict]) -> str:
    """Short client-facing summary of a request body validation failure."""
    if not errors:
        return "Request body is invalid"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "Request body must be valid JSON"
    fields = [str(part) for part in first.get("loc", ()) if part != "body"]
    if not fields:
        return "Request body must be a JSON object with type and message"
    return f"Invalid value for '{'.'.join(fields)}': {first.get('msg', 'invalid input')}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: Settings = app.state.settings
    logger.info(f"Notification relay starting, environment: {config.environment}")
    yield
    closed = await app.state.registry.close_all()
    logger.info(f"Notification relay stopped, closed {closed} open sessions")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        logger.info(f"Rejected malformed body on {request.url.path}: {errors}")
        return error_response(ValidationError(describe_body_errors(errors)))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(UnknownRoute())
        phrase = HTTPStatus(exc.status_code).phrase
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": phrase, "message": exc.detail if isinstance(exc.detail, str) else phrase},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Server error on {request.method} {request.url.path}", exc_info=exc)
        return error_response(InternalServerError())


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """Build an application with its own registry and router."""
    config = config or default_settings

    app = FastAPI(
        title="Notification Relay",
        description="Real-time notification relay: persistent socket connections receive "
                    "notifications addressed to their user id or broadcast to everyone.",
        version="1.0.0",
        lifespan=lifespan,
    )

    registry = ConnectionRegistry()
    app.state.settings = config
    app.state.registry = registry
    app.state.notifier = NotificationRouter(registry, push_timeout=config.push_timeout)
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    register_exception_handlers(app)

    # Routers
    app.include_router(api.router)
    app.include_router(socket.router)
    return app


app = create_app()


def run():
    uvicorn.run(
        "relay.main:app",
        host=default_settings.host,
        port=default_settings.port,
        ws_ping_timeout=default_settings.ping_timeout,
        ws_max_size=default_settings.max_message_size,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
