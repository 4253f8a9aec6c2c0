"""FastAPI application entry point for the import mapper."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from import_mapper.api.routes import router
from import_mapper.config.settings import EngineConfig
from import_mapper.service import ImportMappingService

SERVICE_VERSION = "1.0.0"


def create_app(
    config: EngineConfig | None = None,
    service: ImportMappingService | None = None,
) -> FastAPI:
    """Factory function for creating the FastAPI application."""
    config = config or (service.config if service is not None else EngineConfig())
    logging.basicConfig(level=config.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine = service or ImportMappingService.from_config(config)
        app.state.service = engine
        await engine.warm_cache()
        try:
            yield
        finally:
            await engine.aclose()

    app = FastAPI(
        title="Import Mapper",
        description="Adaptive CSV extraction and schema mapping",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "service": "import-mapper", "version": SERVICE_VERSION}

    return app


app = create_app()
