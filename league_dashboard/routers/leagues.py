"""
League, competitor, round, submission and vote endpoints
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from ..analytics import competitor_stats, round_leaderboard
from ..database import DocumentStore, json_safe
from ..dependencies import get_store
from ..queries import (
    competitor_genre_breakdown,
    league_details,
    list_competitors,
    list_leagues,
    list_rounds,
    list_votes,
    round_details,
    submissions_with_metadata,
)

router = APIRouter(prefix="/api", tags=["Leagues"])
logger = structlog.get_logger(__name__)


@router.get("/leagues")
async def get_leagues(store: DocumentStore = Depends(get_store)):
    try:
        return await list_leagues(store)
    except Exception as e:
        logger.error("Error fetching leagues", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch leagues: {str(e)}")


@router.get("/leagues/{league_id}")
async def get_league(league_id: int, store: DocumentStore = Depends(get_store)):
    """League with its rounds (newest first) and competitors"""
    try:
        details = await league_details(store, league_id)
    except Exception as e:
        logger.error("Error fetching league details", league_id=league_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch league details: {str(e)}")

    if details is None:
        raise HTTPException(status_code=404, detail="League not found")
    return details


@router.get("/competitors/{league_id}")
async def get_competitors(league_id: int, store: DocumentStore = Depends(get_store)):
    try:
        return await list_competitors(store, league_id)
    except Exception as e:
        logger.error("Error fetching competitors", league_id=league_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch competitors: {str(e)}")


@router.get("/competitors/{league_id}/{competitor_id}/stats")
async def get_competitor_stats(league_id: int, competitor_id: str, store: DocumentStore = Depends(get_store)):
    try:
        stats = await competitor_stats(store, league_id, competitor_id)
    except Exception as e:
        logger.error("Error computing competitor stats", competitor_id=competitor_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch competitor stats: {str(e)}")

    if stats is None:
        raise HTTPException(status_code=404, detail="Competitor not found")
    return stats


@router.get("/competitors/{competitor_id}/genres")
async def get_competitor_genres(
    competitor_id: str,
    league_id: Optional[int] = Query(None),
    store: DocumentStore = Depends(get_store)
):
    try:
        return await competitor_genre_breakdown(store, competitor_id, league_id)
    except Exception as e:
        logger.error("Error fetching competitor genres", competitor_id=competitor_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch competitor genres: {str(e)}")


@router.get("/rounds/{league_id}")
async def get_rounds(league_id: int, store: DocumentStore = Depends(get_store)):
    try:
        return await list_rounds(store, league_id)
    except Exception as e:
        logger.error("Error fetching rounds", league_id=league_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch rounds: {str(e)}")


@router.get("/rounds/{round_id}/details")
async def get_round_details(round_id: str, store: DocumentStore = Depends(get_store)):
    try:
        details = await round_details(store, round_id)
    except Exception as e:
        logger.error("Error fetching round details", round_id=round_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch round details: {str(e)}")

    if details is None:
        raise HTTPException(status_code=404, detail="Round not found")
    return json_safe(details)


@router.get("/submissions/{round_id}")
async def get_submissions(round_id: str, store: DocumentStore = Depends(get_store)):
    try:
        return json_safe(await submissions_with_metadata(store, round_id))
    except Exception as e:
        logger.error("Error fetching submissions", round_id=round_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch submissions: {str(e)}")


@router.get("/votes/{round_id}")
async def get_votes(round_id: str, store: DocumentStore = Depends(get_store)):
    try:
        return json_safe(await list_votes(store, round_id))
    except Exception as e:
        logger.error("Error fetching votes", round_id=round_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch votes: {str(e)}")


@router.get("/votes/{round_id}/leaderboard")
async def get_round_leaderboard(round_id: str, store: DocumentStore = Depends(get_store)):
    try:
        leaderboard = await round_leaderboard(store, round_id)
    except Exception as e:
        logger.error("Error computing leaderboard", round_id=round_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch leaderboard: {str(e)}")

    if leaderboard is None:
        raise HTTPException(status_code=404, detail="Round not found")
    return leaderboard
