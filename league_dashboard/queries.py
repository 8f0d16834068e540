"""
Read queries behind the league, song and genre endpoints
"""

import re
from typing import Any, Dict, List, Optional

from .analytics import metadata_by_uri, round_half_up
from .database import Collections, DocumentStore
from .models import album_display_name, display_artist_names, normalize_artists, UNKNOWN_TITLE

TRACK_SUMMARY_PROJECTION = {
    "_id": 0,
    "spotifyUri": 1,
    "name": 1,
    "artists": 1,
    "album": 1,
    "popularity": 1,
    "primaryGenre": 1,
    "allGenres": 1,
}


# ===================
# LEAGUES / ROUNDS
# ===================
async def list_leagues(store: DocumentStore) -> List[Dict[str, Any]]:
    return await store.find(Collections.LEAGUES, {}, sort=[("name", 1)])


async def league_details(store: DocumentStore, league_id: int) -> Optional[Dict[str, Any]]:
    league = await store.find_one(Collections.LEAGUES, {"_id": league_id})
    if league is None:
        return None

    return {
        "league": league,
        "rounds": await list_rounds(store, league_id),
        "competitors": await list_competitors(store, league_id),
    }


async def list_competitors(store: DocumentStore, league_id: int) -> List[Dict[str, Any]]:
    return await store.find(Collections.COMPETITORS, {"leagues": league_id}, sort=[("name", 1)])


async def list_rounds(store: DocumentStore, league_id: int) -> List[Dict[str, Any]]:
    """Rounds of a league, newest first"""
    return await store.find(Collections.ROUNDS, {"leagueId": league_id}, sort=[("created", -1)])


async def submissions_with_metadata(store: DocumentStore, round_id: str) -> List[Dict[str, Any]]:
    submissions = await store.find(Collections.SUBMISSIONS, {"roundId": round_id})
    metadata = await metadata_by_uri(store, (sub.get("spotifyUri") for sub in submissions))
    return [
        {**submission, "metadata": metadata.get(submission.get("spotifyUri"))}
        for submission in submissions
    ]


async def list_votes(store: DocumentStore, round_id: str) -> List[Dict[str, Any]]:
    return await store.find(Collections.VOTES, {"roundId": round_id})


async def round_details(store: DocumentStore, round_id: str) -> Optional[Dict[str, Any]]:
    round_doc = await store.find_one(Collections.ROUNDS, {"_id": round_id})
    if round_doc is None:
        return None

    return {
        "round": round_doc,
        "submissions": await submissions_with_metadata(store, round_id),
        "votes": await list_votes(store, round_id),
    }


# ===================
# SONGS
# ===================
async def list_songs(store: DocumentStore, league_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Every submission with its vote totals, metadata and league name.

    Votes are matched by track URI inside the submission's league.
    """
    submission_filter = {} if league_id is None else {"leagueId": league_id}
    submissions = await store.find(Collections.SUBMISSIONS, submission_filter)

    vote_groups = await store.aggregate(Collections.VOTES, [
        {"$match": submission_filter},
        {"$group": {
            "_id": {"leagueId": "$leagueId", "spotifyUri": "$spotifyUri"},
            "totalVotes": {"$sum": "$pointsAssigned"},
            "voteCount": {"$sum": 1},
        }},
    ])
    votes = {
        (group["_id"]["leagueId"], group["_id"]["spotifyUri"]): group
        for group in vote_groups
    }

    metadata = await metadata_by_uri(store, (sub.get("spotifyUri") for sub in submissions))
    leagues = {league["_id"]: league.get("name") for league in await store.find(Collections.LEAGUES)}

    songs = []
    for submission in submissions:
        uri = submission.get("spotifyUri")
        track = metadata.get(uri) or {}
        totals = votes.get((submission.get("leagueId"), uri), {})
        total_votes = totals.get("totalVotes", 0)
        vote_count = totals.get("voteCount", 0)

        songs.append({
            "_id": submission.get("_id"),
            "spotifyUri": uri,
            "title": track.get("name") or submission.get("title") or UNKNOWN_TITLE,
            "artist": display_artist_names(normalize_artists(track.get("artists") or submission.get("artists"))),
            "album": album_display_name(track.get("album") or submission.get("album")),
            "leagueId": submission.get("leagueId"),
            "leagueName": leagues.get(submission.get("leagueId"), "Unknown League"),
            "roundId": submission.get("roundId"),
            "submitterId": submission.get("submitterId"),
            "primaryGenre": track.get("primaryGenre"),
            "genres": track.get("allGenres") or [],
            "popularity": track.get("popularity") or 0,
            "totalVotes": total_votes,
            "voteCount": vote_count,
            "avgVotes": round_half_up(total_votes / vote_count, 1) if vote_count else 0,
            "created": submission.get("created"),
        })
    return songs


async def list_derived_songs(store: DocumentStore) -> List[Dict[str, Any]]:
    return await store.find(
        Collections.SONGS,
        {},
        {"_id": 0},
        sort=[("submissionCount", -1), ("name", 1)],
    )


# ===================
# GENRES
# ===================
def _genre_count_pipeline(match: Dict[str, Any], limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Submissions matching ``match`` joined to metadata and counted by primaryGenre"""
    pipeline = [
        {"$match": match},
        {"$lookup": {
            "from": Collections.TRACK_METADATA,
            "localField": "spotifyUri",
            "foreignField": "spotifyUri",
            "as": "metadata",
        }},
        {"$unwind": "$metadata"},
        {"$match": {"metadata.primaryGenre": {"$ne": None}}},
        {"$group": {"_id": "$metadata.primaryGenre", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]
    if limit:
        pipeline.append({"$limit": limit})
    return pipeline


async def list_genres(store: DocumentStore) -> List[Dict[str, Any]]:
    return await store.find(Collections.GENRES, {}, {"_id": 0}, sort=[("artistCount", -1), ("name", 1)])


async def search_genres(store: DocumentStore, query: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Case-insensitive substring match on genre name"""
    return await store.find(
        Collections.GENRES,
        {"name": {"$regex": re.escape(query), "$options": "i"}},
        {"_id": 0},
        sort=[("artistCount", -1), ("name", 1)],
        limit=limit,
    )


async def tracks_by_genre(store: DocumentStore, genre: str, limit: int = 100) -> List[Dict[str, Any]]:
    return await store.find(
        Collections.TRACK_METADATA,
        {"allGenres": genre},
        TRACK_SUMMARY_PROJECTION,
        sort=[("popularity", -1), ("name", 1)],
        limit=limit,
    )


async def competitor_genre_breakdown(
    store: DocumentStore,
    competitor_id: str,
    league_id: Optional[int] = None
) -> List[Dict[str, Any]]:
    match: Dict[str, Any] = {"submitterId": competitor_id}
    if league_id is not None:
        match["leagueId"] = league_id

    groups = await store.aggregate(Collections.SUBMISSIONS, _genre_count_pipeline(match))
    return [{"genre": group["_id"], "count": group["count"]} for group in groups]


async def league_genre_distribution(store: DocumentStore, league_id: int, top: int = 10) -> List[Dict[str, Any]]:
    groups = await store.aggregate(Collections.SUBMISSIONS, _genre_count_pipeline({"leagueId": league_id}, top))
    return [{"genre": group["_id"], "count": group["count"]} for group in groups]
