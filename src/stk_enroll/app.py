"""FastAPI application factory for STK-Enroll."""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stk_enroll.common.config import get_settings
from stk_enroll.common.exceptions import DuplicateKeyError, GatewayError, ValidationError
from stk_enroll.common.logging import setup_logging
from stk_enroll.common.schemas import ErrorResponse, HealthResponse


def _error(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error=error).model_dump(exclude_none=True),
    )


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        from stk_enroll.correlation.store import run_sweeper
        from stk_enroll.deps import close_clients, get_store

        sweeper = None
        if settings.sweep_interval > 0 and settings.pending_ttl > 0:
            sweeper = asyncio.create_task(run_sweeper(get_store(), settings.sweep_interval))
        yield
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        await close_clients()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(400, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(400, "Request body must be a JSON object with name, email, phone and industry")

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        return _error(409, exc.message)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return _error(500, "STK push failed", exc.message)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from stk_enroll.payments.router import admin_router, router as payments_router

    prefix = settings.api_prefix
    app.include_router(payments_router, prefix=prefix, tags=["payments"])
    app.include_router(admin_router, prefix=prefix, tags=["admin"])

    return app
