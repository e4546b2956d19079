"""
MemeMarket Simulation Engine - FastAPI Application
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
import uvicorn

from .core.config import settings
from .api.routes import router as api_router
from .api.websocket import manager as ws_manager, router as ws_router
from .context import AppContext
from .services.scheduler import MarketScheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    logger.info(f"Starting {settings.app_name}...")

    context = AppContext.create(settings)
    context.tournaments.initialize_default_tournaments()
    app.state.context = context

    scheduler = MarketScheduler(context)
    if settings.enable_websocket:
        scheduler.add_listener(ws_manager.broadcast)
    app.state.scheduler = scheduler

    if settings.enable_scheduler:
        scheduler.start()
        logger.info("📊 Market simulation running - prices tick automatically")

    logger.info("Application started successfully")

    yield

    # Cleanup
    logger.info("Shutting down...")
    await scheduler.stop()

    stop = getattr(context.provider, "stop", None)
    if stop is not None:
        await stop()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Virtual prediction market over trending social content",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api_router, prefix="/api/v1")
if settings.enable_websocket:
    app.include_router(ws_router, prefix="/ws")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": app.version,
        "environment": settings.environment,
    }


if __name__ == "__main__":
    uvicorn.run(
        "mememarket.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
