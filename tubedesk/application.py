"""Application factory wiring configuration, storage and the HTTP API together."""
from __future__ import annotations

import logging
from typing import Mapping, Optional

import httpx
from fastapi import FastAPI

from .api import YouTubeClientFactory, create_app
from .config import AppConfig, load_app_config
from .database import Database

logger = logging.getLogger("tubedesk.application")


def build_database(config: AppConfig) -> Database:
    database = Database(
        config.database_path,
        encryption_key=config.encryption_key,
        owner_external_id=config.owner_external_id,
    )
    database.initialize()
    return database


def create_application(
    config: Optional[AppConfig] = None,
    *,
    database: Optional[Database] = None,
    environ: Optional[Mapping[str, str]] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    youtube_client_factory: Optional[YouTubeClientFactory] = None,
) -> FastAPI:
    """Create the ASGI application from ``config`` or the process environment."""

    config = config or load_app_config(environ)
    if not config.bot_token:
        logger.warning("BOT_TOKEN is not configured; Telegram sign-in will be rejected")

    database = database or build_database(config)
    logger.info("Using database at %s", database.path)

    return create_app(
        config=config,
        database=database,
        http_client=http_client,
        youtube_client_factory=youtube_client_factory,
    )


__all__ = ["build_database", "create_application"]
