"""Backend for the tubedesk Telegram Mini-App YouTube browser."""

from __future__ import annotations

from typing import Any

from .config import AppConfig, load_app_config
from .database import Database


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the configured ASGI application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "AppConfig",
    "Database",
    "create_app",
    "load_app_config",
]
