"""
Application entry point.

Run locally:
    uvicorn authserver.main:app --reload --port 4000

API docs available at:
    http://localhost:4000/docs   (Swagger UI)
    http://localhost:4000/redoc  (ReDoc)
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from authserver.config import settings
from authserver.core.exceptions import AppError
from authserver.core.rate_limiter import limiter
from authserver.database import Database
from authserver.logging_config import setup_logging
from authserver.routers import auth, password, users
from authserver.services.email_service import EmailService
from authserver.services.oauth_service import GitHubClient

logger = logging.getLogger("authserver")


def _validation_message(exc: RequestValidationError) -> str:
    """First pydantic error as "field: message"; the body stays a flat string."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part != "body"]
    message = str(first.get("msg", "Invalid value")).removeprefix("Value error, ")
    return f"{'.'.join(location)}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """Map every error to a flat {"error": "..."} body, once, at the boundary."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(status_code=429, content={"error": f"Rate limit exceeded: {exc.detail}"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    email_service: Optional[EmailService] = None,
    github_client: Optional[GitHubClient] = None,
) -> FastAPI:
    setup_logging(settings.log_level, settings.log_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ── Startup: shared resources are built once and injected via app.state
        app.state.db.init()
        if settings.db_auto_create:
            app.state.db.create_all()
        await app.state.github_client.connect()
        logger.info("Database connected, allowed origins: %s", settings.cors_origins_list)
        yield
        # ── Shutdown
        await app.state.github_client.disconnect()
        app.state.db.dispose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Authentication Service API",
        description=(
            "Credential and OAuth authentication with OTP email verification, "
            "rotating refresh tokens and password reset."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.db = Database(settings.database_url)
    app.state.email_service = email_service or EmailService(settings)
    app.state.github_client = github_client or GitHubClient(settings)

    # ── Rate Limiter ──────────────────────────────────────────────────────────
    # Attach limiter to app state (required by slowapi)
    app.state.limiter = limiter
    register_exception_handlers(app)

    # ── Request logging ───────────────────────────────────────────────────────
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        ms = int((time.time() - start) * 1000)
        logger.info("%s %s -> %s (%dms)", request.method, request.url.path, response.status_code, ms)
        return response

    # ── CORS ──────────────────────────────────────────────────────────────────
    # FRONTEND_URL plus CORS_ORIGINS; credentials are needed for the cookies.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Cookie", "X-Requested-With"],
        expose_headers=["Set-Cookie"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(users.router, prefix="/api/user", tags=["User"])
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(password.router, prefix="/api/password", tags=["Password"])

    # ── Health Check ──────────────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Simple health check endpoint for load balancers and Docker health checks.
        Returns 200 if the application is running.
        """
        return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()
