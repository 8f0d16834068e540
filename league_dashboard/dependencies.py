"""
FastAPI dependencies resolving shared state from ``app.state``
"""

from typing import Callable

from fastapi import HTTPException, Request

from .api_clients import SpotifyClient
from .config import Settings
from .database import DocumentStore


def get_store(request: Request) -> DocumentStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Database connection not available")
    return store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_catalog_client_factory(request: Request) -> Callable[[], SpotifyClient]:
    return request.app.state.catalog_client_factory
