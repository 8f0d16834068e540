"""
CSV export of stored track metadata
"""

import csv
import os
from pathlib import Path
from typing import Union

import structlog

from .database import Collections, DocumentStore

logger = structlog.get_logger(__name__)

# CSV header -> stored field
EXPORT_COLUMNS = {
    "Spotify URI": "spotifyUri",
    "Energy": "energy",
    "Danceability": "danceability",
    "Valence": "valence",
    "Acousticness": "acousticness",
    "Instrumentalness": "instrumentalness",
    "Liveness": "liveness",
    "Speechiness": "speechiness",
    "Tempo": "tempo",
    "Key": "key",
    "Mode": "mode",
    "Time Signature": "timeSignature",
    "Loudness": "loudness",
    "Duration (ms)": "durationMs",
    "Genre": "primaryGenre",
    "All Genres": "allGenres",
    "Fetched At": "fetchedAt",
}


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(str(item) for item in value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


async def export_metadata_csv(store: DocumentStore, output_path: Union[str, Path]) -> int:
    """Write every TrackMetadata document to ``output_path``; returns the row count"""
    documents = await store.find(Collections.TRACK_METADATA, {}, sort=[("spotifyUri", 1)])

    output_path = Path(output_path)
    os.makedirs(output_path.parent, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(EXPORT_COLUMNS))
        writer.writeheader()
        for document in documents:
            writer.writerow({header: _cell(document.get(field)) for header, field in EXPORT_COLUMNS.items()})

    logger.info("Exported track metadata", rows=len(documents), path=str(output_path))
    return len(documents)
