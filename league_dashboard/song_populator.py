"""
Derived song rebuild: one document per submitted track that has metadata
"""

import structlog

from .database import Collections, DocumentStore
from .metrics import enrichment_stage_duration
from .models import DerivedSong, normalize_artists
from .results import StageSummary

logger = structlog.get_logger(__name__)

SUBMISSIONS_BY_URI_PIPELINE = [
    {"$match": {"spotifyUri": {"$nin": [None, ""]}}},
    {"$group": {
        "_id": "$spotifyUri",
        "submissionCount": {"$sum": 1},
        "title": {"$first": "$title"},
        "artists": {"$first": "$artists"},
    }},
    {"$sort": {"_id": 1}},
]


async def populate_songs(store: DocumentStore) -> StageSummary:
    """
    Upsert a DerivedSong per distinct submitted URI, keyed by metadataId.

    Tracks without TrackMetadata are skipped with a warning.
    """
    with enrichment_stage_duration.labels(stage="songs").time():
        groups = await store.aggregate(Collections.SUBMISSIONS, SUBMISSIONS_BY_URI_PIPELINE)
        summary = StageSummary(stage="songs", requested=len(groups))
        if not groups:
            return summary

        metadata = await store.find(
            Collections.TRACK_METADATA,
            {"spotifyUri": {"$in": [group["_id"] for group in groups]}},
        )
        metadata_by_uri = {doc["spotifyUri"]: doc for doc in metadata}

        operations = []
        for group in groups:
            track = metadata_by_uri.get(group["_id"])
            if track is None:
                summary.failed += 1
                logger.warning(
                    "Submitted track has no metadata, skipping song",
                    spotify_uri=group["_id"],
                    title=group.get("title"),
                )
                continue

            song = DerivedSong(
                metadata_id=track["spotifyUri"],
                name=track.get("name") or group.get("title") or "",
                artists=[credit.name for credit in normalize_artists(track.get("artists") or group.get("artists"))],
                genres=track.get("allGenres") or [],
                submission_count=group["submissionCount"],
            )
            operations.append({
                "filter": {"metadataId": song.metadata_id},
                "update": {"$set": song.to_document()},
            })

        result = await store.bulk_upsert(Collections.SONGS, operations)

    summary.succeeded = len(operations)
    summary.upserted = result["upsertedCount"]
    summary.modified = result["modifiedCount"]
    logger.info("Songs populated", songs=summary.succeeded, skipped=summary.failed)
    return summary
