"""
FastAPI application factory.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.router import router
from .core.config import configure_logging, get_settings
from .core.flags import get_flags

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        logger.info("Starting docreview (env=%s)", settings.env)

        # Log feature flag state
        flags = get_flags()
        logger.info(
            "Flags: s3=%s ocr=%s llm=%s provider=%s require_caller=%s",
            flags.use_s3, flags.use_ocr, flags.use_llm,
            flags.llm_provider, flags.require_caller,
        )
        yield
        logger.info("docreview shut down")

    app = FastAPI(
        title="docreview",
        description="Contract review and document versioning",
        version="0.1.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
