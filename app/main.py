"""
Application entry point.

Run locally:
    uvicorn app.main:app --reload --port 3000
or:
    python -m app.main        (listens on $PORT, default 3000)

API docs available at:
    http://localhost:3000/docs   (Swagger UI)
    http://localhost:3000/redoc  (ReDoc)
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.core.error_handlers import register_exception_handlers
from app.core.logging import configure_logging
from app.core.rate_limiter import limiter
from app.database import get_session_factory
from app.routers import auth, users
from app.services.email_service import deliver_pending_emails

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting account service in {settings.environment} mode")
    # Emails left pending by a previous run are retried in the background.
    redelivery = asyncio.create_task(deliver_pending_emails(get_session_factory()))
    try:
        yield
    finally:
        if not redelivery.done():
            redelivery.cancel()
        logger.info("Shutting down account service")


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Account Service API",
        description=(
            "Signup, login, email OTP verification, password reset, "
            "refresh-token rotation and profile updates."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Rate Limiter ──────────────────────────────────────────────────────────
    # Attach limiter to app state (required by slowapi)
    app.state.limiter = limiter

    # ── Error handling ────────────────────────────────────────────────────────
    register_exception_handlers(app)

    # ── CORS ──────────────────────────────────────────────────────────────────
    # Development/local accept any origin; elsewhere only CORS_ORIGINS.
    if settings.allow_any_origin:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=".*",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(users.router, prefix="/api/user", tags=["User"])

    # ── Health Checks ─────────────────────────────────────────────────────────
    @app.get("/", tags=["Health"])
    def health_check():
        """Liveness probe for load balancers and container health checks."""
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": "Account service is running",
        }

    @app.get("/api", tags=["Health"])
    def api_status():
        return {"message": "API is running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.port)
