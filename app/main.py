"""
Main FastAPI application for the handbook backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import AsyncSessionLocal, close_db, init_db
from app.dependencies.services import build_container
from app.routers import auth, chat, documents, handbooks, health, users

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


def _check_config() -> None:
    """Log warnings for optional settings that are missing.  Never raises."""
    if not settings.JWT_SECRET:
        logger.warning("⚠ JWT_SECRET is not set — sign-in and all protected routes will return 500")
    if not settings.XAI_API_KEY:
        logger.warning(
            "⚠ XAI_API_KEY is not set — chat and handbook generation will use "
            "local retrieval fallbacks"
        )
    else:
        logger.info("✓ Remote model: %s at %s", settings.XAI_MODEL, settings.XAI_BASE_URL)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting handbook backend …")
    logger.info("=" * 60)

    # 1 — Database (required; raises on failure)
    await _check_database()

    # 2 — Optional configuration (logs warnings but continues)
    _check_config()

    # 3 — Upload directory
    if settings.OBJECT_STORE_BACKEND.lower() == "local":
        os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
        logger.info("✓ Upload directory: %s", os.path.abspath(settings.UPLOAD_DIR))

    # 4 — Services (raises ConfigurationError for an incomplete storage setup)
    container = build_container(settings, AsyncSessionLocal)
    app.state.container = container
    logger.info("✓ Object store backend: %s", settings.OBJECT_STORE_BACKEND)

    logger.info("=" * 60)
    logger.info("  Handbook backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down handbook backend …")
    await container.runner.drain(timeout=settings.SHUTDOWN_GRACE_SECONDS)
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Handbook API",
    description=(
        "Upload PDFs, chat with them, and generate long-form handbooks "
        "grounded in their content.\n\n"
        "Key endpoints:\n"
        "- `POST /api/auth/sign-up` — create an account and get a token\n"
        "- `POST /api/documents/` — upload a PDF (indexed in the background)\n"
        "- `POST /api/chat/` — ask a question about your indexed documents\n"
        "- `POST /api/handbooks/` — start generating a handbook\n"
        "- `GET  /api/handbooks/{id}` — poll handbook status and content\n"
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,     prefix="/api/health",    tags=["Health"])
app.include_router(auth.router,       prefix="/api/auth",      tags=["Auth"])
app.include_router(users.router,      prefix="/api/users",     tags=["Users"])
app.include_router(documents.router,  prefix="/api/documents", tags=["Documents"])
app.include_router(chat.router,       prefix="/api/chat",      tags=["Chat"])
app.include_router(handbooks.router,  prefix="/api/handbooks", tags=["Handbooks"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "Handbook API",
        "version": "1.0.0",
        "description": "PDF-grounded chat and handbook generation backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "auth": "/api/auth",
            "users": "/api/users",
            "documents": "/api/documents",
            "chat": "/api/chat",
            "handbooks": "/api/handbooks",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
