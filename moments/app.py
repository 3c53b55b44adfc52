"""
FastAPI application entry point for the Daily Moments service.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from moments.config import get_settings
from moments.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Daily Moments", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
