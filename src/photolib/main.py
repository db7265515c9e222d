from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from photolib.api import router
from photolib.core.logging import setup_logging
from photolib.core.settings import AppSettings, load_settings
from photolib.pipeline.controller import EmbeddingPipeline
from photolib.pipeline.embed_client import EmbeddingClient
from photolib.store.image_store import ImageStore

logger = logging.getLogger(__name__)


def create_app(
    settings: AppSettings,
    *,
    client: Optional[EmbeddingClient] = None,
    store: Optional[ImageStore] = None,
) -> FastAPI:
    store = store or ImageStore(settings.resolved_db_path)
    client = client or EmbeddingClient(
        settings.service_url,
        embed_timeout=settings.pipeline.embed_timeout_sec,
        search_timeout=settings.pipeline.search_timeout_sec,
        health_timeout=settings.pipeline.health_timeout_sec,
    )
    pipeline = EmbeddingPipeline(client, store, settings.pipeline)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.embed_missing_on_startup:
            pipeline.enqueue_missing()
        logger.info("photolib ready, embedding service at %s", client.base_url)
        yield
        await pipeline.aclose()
        store.close()

    app = FastAPI(title="photolib", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.client = client
    app.state.pipeline = pipeline
    app.state.started_at = time.monotonic()
    app.include_router(router, prefix="/api")
    return app


def build_app() -> FastAPI:
    settings = load_settings()
    setup_logging(settings.log_dir, debug=settings.debug)
    return create_app(settings)
