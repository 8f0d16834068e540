"""
Genre taxonomy rebuild and genre statistics
"""

from typing import Any, Dict

import structlog

from .database import Collections, DocumentStore
from .metrics import enrichment_stage_duration
from .models import GenreEntry, utcnow
from .results import StageSummary

logger = structlog.get_logger(__name__)

# One group per genre holding the distinct artist documents carrying it
GENRE_GROUP_PIPELINE = [
    {"$match": {"genres": {"$exists": True, "$ne": []}}},
    {"$unwind": "$genres"},
    {"$group": {"_id": "$genres", "artists": {"$addToSet": "$_id"}}},
]


async def rebuild_genre_taxonomy(store: DocumentStore) -> StageSummary:
    """
    Rebuild the genres collection from ArtistMetadata.

    Always a full replace: the new set is built in staging and swapped in, so
    every artistCount equals the number of artists listing that genre at
    rebuild time.
    """
    with enrichment_stage_duration.labels(stage="taxonomy").time():
        groups = await store.aggregate(Collections.ARTIST_METADATA, GENRE_GROUP_PIPELINE)

        now = utcnow()
        entries = [
            GenreEntry(name=group["_id"], artist_count=len(group["artists"]), created_at=now, last_updated=now)
            for group in groups
            if group.get("_id")
        ]
        entries.sort(key=lambda entry: (-entry.artist_count, entry.name))

        written = await store.replace_collection(
            Collections.GENRES,
            [entry.to_document() for entry in entries],
        )

    logger.info(
        "Genre taxonomy rebuilt",
        genres=written,
        top_genres=[entry.name for entry in entries[:5]],
    )
    return StageSummary(stage="taxonomy", requested=len(entries), succeeded=written)


async def genre_statistics(store: DocumentStore, top: int = 10) -> Dict[str, Any]:
    total_artists = await store.count(Collections.ARTIST_METADATA)
    with_genres = await store.count(Collections.ARTIST_METADATA, {"genres": {"$exists": True, "$ne": []}})

    total_tracks = await store.count(Collections.TRACK_METADATA)
    with_primary = await store.count(Collections.TRACK_METADATA, {"primaryGenre": {"$ne": None}})

    top_genres = await store.find(
        Collections.GENRES,
        {},
        {"_id": 0, "name": 1, "artistCount": 1},
        sort=[("artistCount", -1), ("name", 1)],
        limit=top,
    )

    return {
        "totalArtists": total_artists,
        "artistsWithGenres": with_genres,
        "artistsWithoutGenres": total_artists - with_genres,
        "totalGenres": await store.count(Collections.GENRES),
        "topGenres": top_genres,
        "songsWithPrimaryGenre": with_primary,
        "songsWithoutPrimaryGenre": total_tracks - with_primary,
    }
