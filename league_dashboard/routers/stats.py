"""
Overview and per-league analytics endpoints
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from ..analytics import league_analytics, overview_stats
from ..database import DocumentStore
from ..dependencies import get_store
from ..queries import league_genre_distribution

router = APIRouter(prefix="/api/stats", tags=["Stats"])
logger = structlog.get_logger(__name__)


@router.get("/overview")
async def get_overview_stats(store: DocumentStore = Depends(get_store)):
    try:
        return await overview_stats(store)
    except Exception as e:
        logger.error("Error fetching overview stats", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch overview stats: {str(e)}")


@router.get("/league/{league_id}")
async def get_league_analytics(league_id: int, store: DocumentStore = Depends(get_store)):
    """genreAnalysis, artistAnalysis and popularityAnalysis for one league"""
    try:
        return await league_analytics(store, league_id)
    except Exception as e:
        logger.error("Error fetching league analytics", league_id=league_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch league analytics: {str(e)}")


@router.get("/league/{league_id}/genres")
async def get_league_genres(
    league_id: int,
    top: int = Query(10, ge=1, le=100),
    store: DocumentStore = Depends(get_store)
):
    try:
        return await league_genre_distribution(store, league_id, top)
    except Exception as e:
        logger.error("Error fetching genre distribution", league_id=league_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch genre distribution: {str(e)}")
