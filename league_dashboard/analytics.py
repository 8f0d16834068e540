"""
Read-only statistics over submissions, votes and track metadata

Votes are attributed to submissions by track URI within the same league.
Submissions without TrackMetadata fall back to their denormalized title and
artists; they are left out of genre and popularity analysis only.
"""

import math
from typing import Any, Dict, Iterable, List, Optional

import structlog

from .database import Collections, DocumentStore
from .models import display_artist_names, normalize_artists, primary_artist_name, UNKNOWN_TITLE

logger = structlog.get_logger(__name__)

RECENT_ROUNDS = 5
TOP_ARTISTS = 10


def round_half_up(value: float, digits: int = 0) -> float:
    """Rounding with .5 always going up (2.5 -> 3), unlike round()"""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _created_key(document: Dict[str, Any]) -> float:
    created = document.get("created")
    return created.timestamp() if created else float("-inf")


async def vote_totals_by_uri(store: DocumentStore, match: Dict[str, Any]) -> Dict[str, Dict[str, int]]:
    """{spotifyUri: {"totalVotes": points, "voteCount": n}} for votes matching ``match``"""
    groups = await store.aggregate(Collections.VOTES, [
        {"$match": match},
        {"$group": {
            "_id": "$spotifyUri",
            "totalVotes": {"$sum": "$pointsAssigned"},
            "voteCount": {"$sum": 1},
        }},
    ])
    return {
        group["_id"]: {"totalVotes": group["totalVotes"], "voteCount": group["voteCount"]}
        for group in groups
    }


async def metadata_by_uri(store: DocumentStore, uris: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    uris = [uri for uri in set(uris) if uri]
    if not uris:
        return {}
    documents = await store.find(Collections.TRACK_METADATA, {"spotifyUri": {"$in": uris}})
    return {document["spotifyUri"]: document for document in documents}


# ===================
# OVERVIEW
# ===================
async def overview_stats(store: DocumentStore) -> Dict[str, Any]:
    """Totals, per-league counts and the five newest rounds across all leagues"""
    leagues = await store.find(Collections.LEAGUES, {}, sort=[("name", 1)])

    league_stats = []
    recent_rounds = []
    for league in leagues:
        league_id = league["_id"]
        rounds = await store.find(
            Collections.ROUNDS,
            {"leagueId": league_id},
            sort=[("created", -1)],
            limit=RECENT_ROUNDS,
        )
        league_stats.append({
            **league,
            "stats": {
                "rounds": await store.count(Collections.ROUNDS, {"leagueId": league_id}),
                "competitors": await store.count(Collections.COMPETITORS, {"leagues": league_id}),
                "submissions": await store.count(Collections.SUBMISSIONS, {"leagueId": league_id}),
                "votes": await store.count(Collections.VOTES, {"leagueId": league_id}),
            },
            "recentRounds": rounds,
        })
        recent_rounds.extend({**round_doc, "leagueName": league.get("name")} for round_doc in rounds)

    recent_rounds.sort(key=_created_key, reverse=True)

    return {
        "totalSubmissions": await store.count(Collections.SUBMISSIONS),
        "totalVotes": await store.count(Collections.VOTES),
        "totalRounds": await store.count(Collections.ROUNDS),
        "totalCompetitors": await store.count(Collections.COMPETITORS),
        "leagues": league_stats,
        "recentRounds": recent_rounds[:RECENT_ROUNDS],
    }


# ===================
# LEAGUE ANALYTICS
# ===================
async def league_analytics(store: DocumentStore, league_id: int) -> Dict[str, List[Dict[str, Any]]]:
    """
    Genre, artist and popularity analysis for one league.

    Sorting by totals is stable, so ties keep submission order.
    """
    submissions = await store.find(Collections.SUBMISSIONS, {"leagueId": league_id})
    votes = await vote_totals_by_uri(store, {"leagueId": league_id})
    metadata = await metadata_by_uri(store, (sub.get("spotifyUri") for sub in submissions))

    genre_stats: Dict[str, Dict[str, Any]] = {}
    artist_stats: Dict[str, Dict[str, Any]] = {}
    popularity_analysis = []

    for submission in submissions:
        uri = submission.get("spotifyUri")
        track = metadata.get(uri)
        total_votes = votes.get(uri, {}).get("totalVotes", 0)

        credits = normalize_artists((track or {}).get("artists") or submission.get("artists"))
        title = (track or {}).get("name") or submission.get("title") or UNKNOWN_TITLE

        genre = (track or {}).get("primaryGenre")
        if genre:
            stats = genre_stats.setdefault(genre, {"genre": genre, "votes": 0, "submissions": 0, "related": set()})
            stats["votes"] += total_votes
            stats["submissions"] += 1
            stats["related"].update(track.get("allGenres") or [])

        artist = primary_artist_name(credits)
        stats = artist_stats.setdefault(artist, {"artist": artist, "votes": 0, "submissions": 0})
        stats["votes"] += total_votes
        stats["submissions"] += 1

        popularity = (track or {}).get("popularity") or 0
        if popularity > 0:
            popularity_analysis.append({
                "title": title,
                "artist": display_artist_names(credits),
                "votes": total_votes,
                "popularity": popularity,
            })

    genre_analysis = [
        {
            "genre": stats["genre"],
            "votes": stats["votes"],
            "submissions": stats["submissions"],
            "avgVotes": int(round_half_up(stats["votes"] / stats["submissions"])),
            "relatedGenres": len(stats["related"]),
        }
        for stats in genre_stats.values()
    ]
    artist_analysis = [
        {
            **stats,
            "avgVotes": int(round_half_up(stats["votes"] / stats["submissions"])),
        }
        for stats in artist_stats.values()
    ]

    return {
        "genreAnalysis": sorted(genre_analysis, key=lambda row: row["votes"], reverse=True),
        "artistAnalysis": sorted(artist_analysis, key=lambda row: row["votes"], reverse=True)[:TOP_ARTISTS],
        "popularityAnalysis": popularity_analysis,
    }


# ===================
# COMPETITORS / ROUNDS
# ===================
async def competitor_stats(store: DocumentStore, league_id: int, competitor_id: str) -> Optional[Dict[str, Any]]:
    competitor = await store.find_one(Collections.COMPETITORS, {"_id": competitor_id})
    if competitor is None:
        return None

    submissions = await store.find(
        Collections.SUBMISSIONS,
        {"leagueId": league_id, "submitterId": competitor_id},
        {"spotifyUri": 1},
    )
    uris = [sub["spotifyUri"] for sub in submissions if sub.get("spotifyUri")]

    received = await vote_totals_by_uri(store, {"leagueId": league_id, "spotifyUri": {"$in": uris}})
    given = await store.aggregate(Collections.VOTES, [
        {"$match": {"leagueId": league_id, "voterId": competitor_id}},
        {"$group": {"_id": None, "points": {"$sum": "$pointsAssigned"}, "count": {"$sum": 1}}},
    ])

    points_received = sum(totals["totalVotes"] for totals in received.values())
    return {
        "competitor": {"_id": competitor["_id"], "name": competitor.get("name")},
        "leagueId": league_id,
        "submissions": len(submissions),
        "votesReceived": sum(totals["voteCount"] for totals in received.values()),
        "pointsReceived": points_received,
        "votesGiven": given[0]["count"] if given else 0,
        "pointsGiven": given[0]["points"] if given else 0,
        "avgPointsPerSubmission": round_half_up(points_received / len(submissions), 1) if submissions else 0,
    }


async def round_leaderboard(store: DocumentStore, round_id: str) -> Optional[Dict[str, Any]]:
    """Submissions of a round ranked by points received, highest first"""
    round_doc = await store.find_one(Collections.ROUNDS, {"_id": round_id})
    if round_doc is None:
        return None

    submissions = await store.find(Collections.SUBMISSIONS, {"roundId": round_id})
    totals = await vote_totals_by_uri(store, {"roundId": round_id})
    metadata = await metadata_by_uri(store, (sub.get("spotifyUri") for sub in submissions))

    submitter_ids = list({sub.get("submitterId") for sub in submissions if sub.get("submitterId")})
    competitors = await store.find(Collections.COMPETITORS, {"_id": {"$in": submitter_ids}})
    names = {competitor["_id"]: competitor.get("name") for competitor in competitors}

    rows = []
    for submission in submissions:
        uri = submission.get("spotifyUri")
        track = metadata.get(uri) or {}
        round_totals = totals.get(uri, {})
        rows.append({
            "spotifyUri": uri,
            "title": track.get("name") or submission.get("title") or UNKNOWN_TITLE,
            "artist": display_artist_names(normalize_artists(track.get("artists") or submission.get("artists"))),
            "submitterId": submission.get("submitterId"),
            "submitterName": names.get(submission.get("submitterId")),
            "totalPoints": round_totals.get("totalVotes", 0),
            "voteCount": round_totals.get("voteCount", 0),
            "primaryGenre": track.get("primaryGenre"),
        })

    rows.sort(key=lambda row: row["totalPoints"], reverse=True)
    for rank, row in enumerate(rows, start=1):
        row["rank"] = rank

    return {"round": round_doc, "leaderboard": rows}
