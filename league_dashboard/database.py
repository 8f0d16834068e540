"""
Document store access layer (MongoDB through the asynchronous PyMongo client)

``DocumentStore`` is the only persistence surface the pipeline, analytics and
routers use: find / count / distinct / aggregate / bulk upsert / insert /
delete plus a staging-and-rename collection swap for full rebuilds.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from bson import ObjectId
from pymongo import AsyncMongoClient, UpdateOne

from .config import Settings

logger = structlog.get_logger(__name__)


def json_safe(value: Any) -> Any:
    """Replace ObjectIds (generated _id of submissions/votes) with strings"""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [json_safe(item) for item in value]
    return value


class Collections:
    LEAGUES = "leagues"
    COMPETITORS = "competitors"
    ROUNDS = "rounds"
    SUBMISSIONS = "submissions"
    VOTES = "votes"
    TRACK_METADATA = "song_metadata"
    ARTIST_METADATA = "artist_info"
    GENRES = "genres"
    SONGS = "songs"

    # Cleared and reloaded by the CSV import
    LEAGUE_DATA = (LEAGUES, COMPETITORS, ROUNDS, SUBMISSIONS, VOTES)


UNIQUE_INDEXES: Dict[str, str] = {
    Collections.TRACK_METADATA: "spotifyUri",
    Collections.ARTIST_METADATA: "artistId",
    Collections.GENRES: "name",
    Collections.SONGS: "metadataId",
}

SECONDARY_INDEXES: Dict[str, Tuple[str, ...]] = {
    Collections.SUBMISSIONS: ("spotifyUri", "roundId", "leagueId"),
    Collections.VOTES: ("spotifyUri", "roundId", "leagueId"),
    Collections.ROUNDS: ("leagueId",),
}


class DocumentStore:
    """Thin async wrapper over one database"""

    def __init__(self, database):
        self.database = database

    def collection(self, name: str):
        return self.database[name]

    async def find(
        self,
        name: str,
        filter: Optional[Dict[str, Any]] = None,
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: int = 0
    ) -> List[Dict[str, Any]]:
        cursor = self.collection(name).find(filter or {}, projection)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(None)

    async def find_one(
        self,
        name: str,
        filter: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        return await self.collection(name).find_one(filter, projection)

    async def count(self, name: str, filter: Optional[Dict[str, Any]] = None) -> int:
        return await self.collection(name).count_documents(filter or {})

    async def distinct(self, name: str, field: str, filter: Optional[Dict[str, Any]] = None) -> List[Any]:
        return await self.collection(name).distinct(field, filter or {})

    async def aggregate(self, name: str, pipeline: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        cursor = await self.collection(name).aggregate(list(pipeline))
        return await cursor.to_list(None)

    async def bulk_upsert(
        self,
        name: str,
        operations: Sequence[Dict[str, Any]],
        upsert: bool = True
    ) -> Dict[str, int]:
        """
        Apply ``[{"filter": ..., "update": ...}]`` as one unordered bulk write.

        With ``upsert=False`` missing documents are left alone (update-only).
        """
        if not operations:
            return {"upsertedCount": 0, "modifiedCount": 0, "matchedCount": 0}

        requests = [UpdateOne(op["filter"], op["update"], upsert=upsert) for op in operations]
        result = await self.collection(name).bulk_write(requests, ordered=False)
        return {
            "upsertedCount": result.upserted_count,
            "modifiedCount": result.modified_count,
            "matchedCount": result.matched_count,
        }

    async def insert_many(self, name: str, documents: Sequence[Dict[str, Any]]) -> int:
        if not documents:
            return 0
        result = await self.collection(name).insert_many(list(documents))
        return len(result.inserted_ids)

    async def delete_many(self, name: str, filter: Optional[Dict[str, Any]] = None) -> int:
        result = await self.collection(name).delete_many(filter or {})
        return result.deleted_count

    async def replace_collection(self, name: str, documents: Sequence[Dict[str, Any]]) -> int:
        """
        Replace the whole contents of ``name`` with ``documents``.

        Documents are written to ``<name>_staging`` first and the staging
        collection is renamed over the target, so readers see either the old
        or the new set, never an empty collection mid-rebuild.
        """
        if not documents:
            await self.delete_many(name)
            return 0

        staging_name = f"{name}_staging"
        await self.database.drop_collection(staging_name)
        await self.collection(staging_name).insert_many(list(documents))
        await self.collection(staging_name).rename(name, dropTarget=True)
        await self._ensure_collection_indexes(name)

        logger.info("Collection replaced", collection=name, documents=len(documents))
        return len(documents)

    async def ensure_indexes(self) -> None:
        for name in set(UNIQUE_INDEXES) | set(SECONDARY_INDEXES):
            await self._ensure_collection_indexes(name)

    async def _ensure_collection_indexes(self, name: str) -> None:
        if name in UNIQUE_INDEXES:
            await self.collection(name).create_index(UNIQUE_INDEXES[name], unique=True)
        for field in SECONDARY_INDEXES.get(name, ()):
            await self.collection(name).create_index(field)

    async def ping(self) -> bool:
        await self.database.command("ping")
        return True


class MongoConnection:
    """Owns the client for the lifetime of a process (API lifespan or CLI run)"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client: Optional[AsyncMongoClient] = None
        self.store: Optional[DocumentStore] = None

    async def __aenter__(self) -> DocumentStore:
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> DocumentStore:
        url = self.settings.require_database()
        self.client = AsyncMongoClient(url)
        self.store = DocumentStore(self.client[self.settings.mongodb_db_name])
        await self.store.ping()
        await self.store.ensure_indexes()
        logger.info("Connected to document store", database=self.settings.mongodb_db_name)
        return self.store

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None
            logger.info("Document store connection closed")
