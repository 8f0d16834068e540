"""
Genre taxonomy endpoints
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from ..database import DocumentStore
from ..dependencies import get_store
from ..queries import list_genres, search_genres, tracks_by_genre

router = APIRouter(prefix="/api/genres", tags=["Genres"])
logger = structlog.get_logger(__name__)


@router.get("")
async def get_genres(store: DocumentStore = Depends(get_store)):
    try:
        return await list_genres(store)
    except Exception as e:
        logger.error("Error fetching genres", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch genres: {str(e)}")


@router.get("/search")
async def get_genre_search(
    q: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=500),
    store: DocumentStore = Depends(get_store)
):
    try:
        return await search_genres(store, q, limit)
    except Exception as e:
        logger.error("Error searching genres", query=q, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to search genres: {str(e)}")


@router.get("/{name}/tracks")
async def get_genre_tracks(
    name: str,
    limit: int = Query(100, ge=1, le=1000),
    store: DocumentStore = Depends(get_store)
):
    try:
        return await tracks_by_genre(store, name, limit)
    except Exception as e:
        logger.error("Error fetching genre tracks", genre=name, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch genre tracks: {str(e)}")
