"""
FastAPI Application Entry Point

Integrates:
  - Describe queue endpoints
  - Speech playback endpoints
  - Health checks
  - Middleware for logging & error handling

Run: uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router as api_router
from config import Config
from infra import InfraBootstrap

# Setup logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: startup and shutdown handlers.
    """
    # Startup
    logger.info("=" * 60)
    logger.info("Aloud starting up...")
    logger.info(f"Environment: {Config.ENVIRONMENT}")
    logger.info(f"Describe Backend: {Config.DESCRIBE_BACKEND}")
    logger.info(f"TTS Backend: {Config.TTS_BACKEND}")
    logger.info("=" * 60)

    app.state.infra = InfraBootstrap()

    yield

    # Shutdown
    logger.info("Aloud shutting down...")
    await app.state.infra.aclose()
    app.state.infra = None


# Create FastAPI app
app = FastAPI(
    title="Aloud API",
    description="Image description queue and speech playback",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Middleware for logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    logger.debug(f"{request.method} {request.url.path}")
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"Request error: {str(e)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# Include routers
app.include_router(api_router)


# Health check endpoints
@app.get("/health/live")
async def health_live():
    """Live health check (Kubernetes liveness probe)."""
    return {"status": "alive"}


@app.get("/health/ready")
async def health_ready(request: Request):
    """Readiness health check (Kubernetes readiness probe)."""
    infra = getattr(request.app.state, "infra", None)
    if infra is None:
        return {"status": "not_ready", "reason": "infrastructure not initialized"}
    if not Config.validate():
        return {"status": "not_ready", "reason": "invalid configuration"}
    return {
        "status": "ready",
        "queue_alive": infra.queue.alive,
        "playback": infra.playback is not None,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Aloud API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "describe": "POST /describe",
            "describe_raw": "POST /describe/raw",
            "describe_queue": "GET /describe/queue",
            "describe_result": "GET /describe/results/{id}",
            "speech_play": "POST /speech/play",
            "speech_stop": "POST /speech/stop",
            "speech_seek": "POST /speech/seek",
            "speech_volume": "POST /speech/volume",
            "speech_state": "GET /speech/state",
            "speech_voices": "GET /speech/voices",
            "recent_errors": "GET /errors/recent",
            "health_live": "GET /health/live",
            "health_ready": "GET /health/ready",
        },
    }


@app.get("/config/info")
async def config_info(request: Request):
    """Get non-sensitive configuration info."""
    infra = getattr(request.app.state, "infra", None)
    info = {
        "environment": Config.ENVIRONMENT,
        "describe_backend": Config.DESCRIBE_BACKEND,
        "tts_backend": Config.TTS_BACKEND,
        "app_port": Config.APP_PORT,
    }
    if infra is not None:
        info["queue"] = infra.queue.options.model_dump()
        info["tracer_backend"] = infra.config.tracer_backend
        info["local_fallback_enabled"] = infra.config.local_fallback_enabled
        info["local_speech_enabled"] = infra.config.local_speech_enabled
    return info


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=Config.APP_PORT,
        reload=Config.ENVIRONMENT == "development",
    )
