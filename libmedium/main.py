from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.responses import HTMLResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from libmedium.api.routes import HTML_MEDIA_TYPE, router
from libmedium.dependencies import (
    close_http_client,
    get_renderer,
    get_settings,
    get_telemetry,
)
from libmedium.errors import LibmediumError
from libmedium.logging_config import configure_application_logging

LOGGER = logging.getLogger("libmedium.http")


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_application_logging(get_settings())
    try:
        yield
    finally:
        await close_http_client()


async def libmedium_error_handler(request: Request, exc: LibmediumError) -> Response:
    LOGGER.warning(
        "request failed path=%s status=%s error_type=%s detail=%s",
        request.url.path,
        exc.status_code,
        type(exc).__name__,
        exc,
    )
    body = get_renderer().render_error(
        status_code=exc.status_code,
        message=exc.public_message,
    )
    return HTMLResponse(body, status_code=exc.status_code, media_type=HTML_MEDIA_TYPE)


def create_app() -> FastAPI:
    app = FastAPI(title="libmedium", version="0.1.0", lifespan=app_lifespan)

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        telemetry = get_telemetry()
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        started_at = perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            telemetry.emit(
                "http.request.error",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            raise
        else:
            response.headers["X-Request-ID"] = request_id
            telemetry.emit(
                "http.request.finish",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                status_code=response.status_code,
            )
            return response
        finally:
            reset_contextvars(**context_tokens)

    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(LibmediumError, libmedium_error_handler)
    app.include_router(router)
    return app


app = create_app()
