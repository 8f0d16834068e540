"""
Schema validation pass over every stored collection

Each document is checked against its model; failures are logged with the
document id and processing continues.
"""

from typing import Dict, Type

import structlog
from pydantic import BaseModel, ValidationError

from .database import Collections, DocumentStore
from .models import (
    ArtistMetadata,
    Competitor,
    DerivedSong,
    GenreEntry,
    League,
    Round,
    Submission,
    TrackMetadata,
    Vote,
)

logger = structlog.get_logger(__name__)

COLLECTION_MODELS: Dict[str, Type[BaseModel]] = {
    Collections.LEAGUES: League,
    Collections.COMPETITORS: Competitor,
    Collections.ROUNDS: Round,
    Collections.SUBMISSIONS: Submission,
    Collections.VOTES: Vote,
    Collections.TRACK_METADATA: TrackMetadata,
    Collections.ARTIST_METADATA: ArtistMetadata,
    Collections.GENRES: GenreEntry,
    Collections.SONGS: DerivedSong,
}


async def validate_collections(store: DocumentStore) -> Dict[str, Dict[str, int]]:
    report = {}
    for name, model in COLLECTION_MODELS.items():
        counts = {"processed": 0, "valid": 0, "invalid": 0}
        for document in await store.find(name):
            counts["processed"] += 1
            try:
                model.model_validate(document)
            except ValidationError as e:
                counts["invalid"] += 1
                logger.error(
                    "Document failed validation",
                    collection=name,
                    document_id=str(document.get("_id")),
                    errors=e.errors(include_url=False, include_input=False),
                )
            else:
                counts["valid"] += 1

        report[name] = counts
        logger.info("Collection validated", collection=name, **counts)
    return report
