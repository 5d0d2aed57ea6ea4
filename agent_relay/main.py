from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import socketio
import structlog

from agent_relay.config import get_settings
from agent_relay.api.endpoints import router
from agent_relay.utils.logging import configure_logging
from agent_relay.db.database import create_tables
from agent_relay.db.redis import redis_client
from agent_relay.realtime.server import sio

# Configure logging
configure_logging()
logger = structlog.get_logger()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown"""
    # Startup
    logger.info("Starting Agent Relay", version="1.0.0")

    # Create database tables
    try:
        create_tables()
    except Exception as e:
        logger.error("Failed to create database tables", error=str(e))
        raise

    yield

    # Shutdown
    redis_client.close()
    logger.info("Shutting down Agent Relay")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    description="Live chat relay between the visitor widget and the admin console"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Agent Relay",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
            "realtime": f"/{settings.socketio_path}",
        }
    }


# Socket.IO in front, everything else falls through to FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=settings.socketio_path)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "agent_relay.main:asgi_app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=None  # We use structlog instead
    )
