"""
TaleFrame API - Consistent Storybook Illustrations
FastAPI Backend Entry Point
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from taleframe.core.config import Settings, get_settings
from taleframe.core.exceptions import IllustrationError
from taleframe.api import illustrations, images
from taleframe.services.descriptor_cache import DescriptorCache
from taleframe.services.gemini_image import GeminiImageService
from taleframe.services.orchestrator import IllustrationOrchestrator
from taleframe.services.storage import AssetStore
from taleframe.workers.illustration import IllustrationWorker
from taleframe.workers.queue import IllustrationJobManager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.APP_NAME}...")
    settings.generated_path.mkdir(parents=True, exist_ok=True)
    if settings.SAVE_GENERATED_IMAGES:
        logger.info(f"[Storage] Saving generated images to {settings.generated_path}")
    yield
    logger.info(f"Shutting down {settings.APP_NAME}...")
    await app.state.asset_store.wait_for_pruning()


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[IllustrationOrchestrator] = None,
    descriptor_cache: Optional[DescriptorCache] = None,
) -> FastAPI:
    """Build the application and wire its components onto app.state."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Character-consistent illustrations for personalized children's stories",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    asset_store = AssetStore(settings)
    orchestrator = orchestrator or IllustrationOrchestrator(settings, asset_store=asset_store)
    descriptor_cache = descriptor_cache or DescriptorCache(settings, vision=GeminiImageService(settings))

    app.state.settings = settings
    app.state.asset_store = asset_store
    app.state.orchestrator = orchestrator
    app.state.descriptor_cache = descriptor_cache
    app.state.job_manager = IllustrationJobManager(
        IllustrationWorker(orchestrator),
        history_limit=settings.JOB_HISTORY_LIMIT,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(illustrations.router, prefix="/api/illustrations", tags=["Illustrations"])
    app.include_router(images.router, prefix="/api", tags=["Images"])

    # Persisted illustrations are served under the directory name
    app.mount(
        f"/{settings.GENERATED_IMAGE_DIR}",
        StaticFiles(directory=settings.generated_path, check_dir=False),
        name="generated",
    )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Health check endpoint for monitoring.
        Reports storage and the availability of each provider tier.
        """
        status = {
            "status": "healthy",
            "version": VERSION,
            "environment": {
                "async_illustrations": settings.ASYNC_ILLUSTRATIONS,
                "save_generated_images": settings.SAVE_GENERATED_IMAGES,
            },
            "services": {},
        }

        for provider in orchestrator.providers:
            try:
                provider.check_available()
                status["services"][provider.name] = "ok"
            except IllustrationError as e:
                status["services"][provider.name] = f"unavailable: {e}"

        if not any(value == "ok" for value in status["services"].values()):
            status["status"] = "degraded"

        if settings.SAVE_GENERATED_IMAGES:
            status["services"]["storage"] = "ok" if settings.generated_path.is_dir() else "error: missing directory"
            if status["services"]["storage"] != "ok":
                status["status"] = "degraded"

        status["services"]["descriptor_cache"] = {
            "enabled": settings.ENABLE_IMAGE_ANALYSIS,
            "entries": descriptor_cache.size(),
        }
        return status

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "message": f"{settings.APP_NAME} - Storybook Illustration Service",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
