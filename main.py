import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes.videos import router as videos_router
from core.config import LOG_LEVEL, Settings
from core.errors import register_exception_handlers
from services.video_service import ensure_dirs
from services.video_store import VideoStore, create_store

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[VideoStore] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_dirs(settings)
        app.state.store = store if store is not None else create_store(settings)
        logger.info("Serving videos from %s", settings.video_dir)
        try:
            yield
        finally:
            app.state.store.close()

    app = FastAPI(title="Personal video library", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Accept-Ranges", "Content-Range", "Content-Length"],
    )

    register_exception_handlers(app)

    app.include_router(videos_router)
    # the web client calls the same routes under /api
    app.include_router(videos_router, prefix="/api", include_in_schema=False)

    return app


configure_logging()
app = create_app()
