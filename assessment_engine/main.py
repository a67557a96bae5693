import signal
import asyncio
import logging
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# IMPORT ROUTERS
from assessment_engine.routers.common import engine_exception_handler, validation_exception_handler
from assessment_engine.routers.health import router as health_router
from assessment_engine.routers.graphs import router as graphs_router
from assessment_engine.routers.sessions import router as sessions_router
from assessment_engine.routers.episodes import router as episodes_router
from assessment_engine.routers.profiles import router as profiles_router
from assessment_engine.routers.maintenance import router as maintenance_router
load_dotenv()

from assessment_engine.config import settings
from assessment_engine.core.exceptions import AssessmentEngineError
from assessment_engine.core.logging import configure_logging
from assessment_engine.services.background import get_background_runner
from assessment_engine.shutdown import set_shutdown

logger = logging.getLogger(__name__)


# SWAGGER UI - tag display order
_OPENAPI_TAGS = [
    {"name": "Root"},
    {"name": "Health"},
    {"name": "Graphs"},
    {"name": "Sessions"},
    {"name": "Episodes"},
    {"name": "Subject Profiles"},
    {"name": "Maintenance"},
]

# FASTAPI APPLICATION CONFIGURATION
app = FastAPI(
    title=f"{settings.APP_NAME} API",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=_OPENAPI_TAGS,
)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

# REGISTER EXCEPTION HANDLERS
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(AssessmentEngineError, engine_exception_handler)

# REGISTER ROUTERS (order matches _OPENAPI_TAGS / Swagger UI display order)
app.include_router(health_router)       # Health
app.include_router(graphs_router)       # Graphs
app.include_router(sessions_router)     # Sessions
app.include_router(episodes_router)     # Episodes
app.include_router(profiles_router)     # Subject Profiles
app.include_router(maintenance_router)  # Maintenance


# ROOT ENDPOINT
@app.get("/", tags=["Root"], summary="Root endpoint")
async def root():
    return {
        "service": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": {
            "swagger": "/docs",
            "redoc": "/redoc"
        },
        "status": "running"
    }


# STARTUP EVENT
@app.on_event("startup")
async def startup_event():
    configure_logging()
    logger.info("Starting %s (env=%s)", settings.APP_NAME, settings.APP_ENV)

    # Register signal handlers for graceful shutdown (Ctrl+C / kill)
    loop = asyncio.get_running_loop()

    def _signal_handler(sig):
        logger.warning("Received %s, shutting down gracefully", sig.name)
        set_shutdown()

    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler, sig)
    except (NotImplementedError, RuntimeError):
        # Windows, or not running in the main thread
        logger.info("Signal handlers not supported here; relying on the shutdown event")


# SHUTDOWN EVENT
@app.on_event("shutdown")
async def shutdown_event():
    set_shutdown()  # Ensure flag is set even if signal handler didn't fire
    runner = get_background_runner()
    logger.info("Shutting down, draining %d background job(s)", runner.pending)
    await runner.drain(timeout=settings.SHUTDOWN_DRAIN_TIMEOUT_SECONDS)


# RUN WITH UVICORN
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "assessment_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
