"""
Song listing endpoints
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from ..database import DocumentStore, json_safe
from ..dependencies import get_store
from ..queries import list_derived_songs, list_songs

router = APIRouter(prefix="/api/songs", tags=["Songs"])
logger = structlog.get_logger(__name__)


@router.get("")
async def get_songs(league_id: Optional[int] = Query(None), store: DocumentStore = Depends(get_store)):
    try:
        return json_safe(await list_songs(store, league_id))
    except Exception as e:
        logger.error("Error fetching songs", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch songs: {str(e)}")


@router.get("/derived")
async def get_derived_songs(store: DocumentStore = Depends(get_store)):
    try:
        return await list_derived_songs(store)
    except Exception as e:
        logger.error("Error fetching derived songs", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch derived songs: {str(e)}")
