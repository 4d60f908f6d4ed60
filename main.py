from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import uvicorn

from mediahub.core.config import settings
from mediahub.core.logging_config import setup_logging
from mediahub.api.auth_routes import router as auth_router
from mediahub.api.media_routes import router as media_router
from mediahub.services.viewer_session import session_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger.info("Starting Mediahub Backend...")
    if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
        logger.warning("WARNING: SUPABASE_URL / SUPABASE_ANON_KEY not set - viewer sessions will fail to open")
    logger.info(f"Realtime feed updates: {'enabled' if settings.ENABLE_REALTIME else 'disabled'}")

    yield
    # Shutdown
    logger.info("Shutting down Mediahub Backend...")
    await session_registry.close_all()


app = FastAPI(
    title="Mediahub Backend",
    description="Media sharing API - sessions, enriched feeds, likes and follows",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    logger.error(f"VALIDATION ERROR on {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())}
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api/v1")
app.include_router(media_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Liveness plus a count of open viewer sessions"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "viewer_sessions": len(session_registry),
        "realtime_enabled": settings.ENABLE_REALTIME,
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
