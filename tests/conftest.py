"""
Pytest configuration and shared fixtures for league dashboard testing.

The document store runs on mongomock behind a small adapter exposing the
awaitable surface of pymongo's AsyncMongoClient. The catalog API is served
by an in-process httpx.MockTransport.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
import mongomock
import pytest
import pytest_asyncio

from league_dashboard.api_clients import SpotifyClient
from league_dashboard.database import Collections, DocumentStore


# ===================
# ASYNC MONGOMOCK ADAPTER
# ===================
class AsyncCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length=None):
        documents = list(self._cursor)
        return documents if length is None else documents[:length]


class AsyncCollection:
    def __init__(self, collection, database):
        self._collection = collection
        self._database = database

    def find(self, *args, **kwargs):
        return AsyncCursor(self._collection.find(*args, **kwargs))

    async def find_one(self, *args, **kwargs):
        return self._collection.find_one(*args, **kwargs)

    async def count_documents(self, filter, **kwargs):
        return self._collection.count_documents(filter, **kwargs)

    async def distinct(self, key, filter=None):
        return self._collection.distinct(key, filter)

    async def aggregate(self, pipeline):
        return AsyncCursor(self._collection.aggregate(pipeline))

    async def insert_many(self, documents, **kwargs):
        return self._collection.insert_many(documents, **kwargs)

    async def update_one(self, filter, update, upsert=False):
        return self._collection.update_one(filter, update, upsert=upsert)

    async def delete_many(self, filter):
        return self._collection.delete_many(filter)

    async def create_index(self, keys, **kwargs):
        return self._collection.create_index(keys, **kwargs)

    async def bulk_write(self, requests, ordered=True):
        upserted = modified = matched = 0
        for request in requests:
            result = self._collection.update_one(request._filter, request._doc, upsert=request._upsert)
            matched += result.matched_count
            modified += result.modified_count
            if result.upserted_id is not None:
                upserted += 1
        return SimpleNamespace(upserted_count=upserted, modified_count=modified, matched_count=matched)

    async def rename(self, new_name, dropTarget=False):
        documents = list(self._collection.find())
        target = self._database[new_name]
        target.drop()
        if documents:
            target.insert_many(documents)
        self._collection.drop()


class AsyncDatabase:
    def __init__(self, database):
        self._database = database

    def __getitem__(self, name):
        return AsyncCollection(self._database[name], self._database)

    async def drop_collection(self, name):
        self._database.drop_collection(name)

    async def command(self, command, *args, **kwargs):
        if command == "ping":
            return {"ok": 1.0}
        return self._database.command(command, *args, **kwargs)


@pytest.fixture
def mongo_database():
    """In-memory database behind the async adapter"""
    client = mongomock.MongoClient()
    return AsyncDatabase(client["music_league_test"])


@pytest.fixture
def store(mongo_database):
    return DocumentStore(mongo_database)


# ===================
# SAMPLE LEAGUE DATA
# ===================
URI_ROCK = "spotify:track:rock0000000000000000001"
URI_POP = "spotify:track:pop00000000000000000002"
URI_NO_METADATA = "spotify:track:missing000000000000003"


def created(day: int) -> datetime:
    return datetime(2024, 1, day, 12, 0, tzinfo=timezone.utc)


async def insert_league(
    store: DocumentStore,
    league_id: int = 1,
    rounds: Optional[List[Dict[str, Any]]] = None,
    submissions: Optional[List[Dict[str, Any]]] = None,
    votes: Optional[List[Dict[str, Any]]] = None,
    competitors: Optional[List[Dict[str, Any]]] = None,
) -> None:
    await store.insert_many(Collections.LEAGUES, [{"_id": league_id, "name": f"League {league_id}"}])
    await store.insert_many(Collections.ROUNDS, rounds or [])
    await store.insert_many(Collections.SUBMISSIONS, submissions or [])
    await store.insert_many(Collections.VOTES, votes or [])
    await store.insert_many(Collections.COMPETITORS, competitors or [])


def submission(uri: str, round_id: str = "R1", league_id: int = 1, submitter: str = "alice",
               title: str = "Song", artists: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "roundId": round_id,
        "leagueId": league_id,
        "submitterId": submitter,
        "spotifyUri": uri,
        "title": title,
        "artists": artists if artists is not None else ["Somebody"],
        "album": "Album",
    }


def vote(uri: str, points: int, round_id: str = "R1", league_id: int = 1, voter: str = "bob") -> Dict[str, Any]:
    return {
        "roundId": round_id,
        "leagueId": league_id,
        "voterId": voter,
        "spotifyUri": uri,
        "pointsAssigned": points,
    }


def track_metadata(uri: str, name: str, artists: List[Dict[str, Any]], primary_genre: Optional[str] = None,
                   all_genres: Optional[List[str]] = None, popularity: Optional[int] = None) -> Dict[str, Any]:
    document = {"spotifyUri": uri, "name": name, "artists": artists, "allGenres": all_genres or []}
    document["primaryGenre"] = primary_genre
    if popularity is not None:
        document["popularity"] = popularity
    return document


@pytest_asyncio.fixture
async def scored_league(store):
    """
    League 1, round R1: a rock track with 5 + 3 points, a pop track with 4,
    and a submission whose track has no metadata (2 points).
    """
    await insert_league(
        store,
        rounds=[{"_id": "R1", "leagueId": 1, "name": "Opening Round", "created": created(1)}],
        submissions=[
            submission(URI_ROCK, submitter="alice", title="Rock Song", artists=["Rock Band"]),
            submission(URI_POP, submitter="bob", title="Pop Song", artists=["Pop Star"]),
            submission(URI_NO_METADATA, submitter="carol", title="Lost Song", artists=["Obscure Act"]),
        ],
        votes=[
            vote(URI_ROCK, 5, voter="bob"),
            vote(URI_ROCK, 3, voter="carol"),
            vote(URI_POP, 4, voter="alice"),
            vote(URI_NO_METADATA, 2, voter="alice"),
        ],
        competitors=[
            {"_id": "alice", "name": "Alice", "leagues": [1]},
            {"_id": "bob", "name": "Bob", "leagues": [1]},
            {"_id": "carol", "name": "Carol", "leagues": [1]},
        ],
    )
    await store.insert_many(Collections.TRACK_METADATA, [
        track_metadata(URI_ROCK, "Rock Song", [{"name": "Rock Band", "id": "a-rock"}],
                       primary_genre="rock", all_genres=["rock", "hard rock"], popularity=70),
        track_metadata(URI_POP, "Pop Song", [{"name": "Pop Star", "id": "a-pop"}, {"name": "Guest", "id": "a-guest"}],
                       primary_genre="pop", all_genres=["pop"], popularity=0),
    ])
    return store


# ===================
# CATALOG API
# ===================
def make_track(track_id: str, name: str, artists, popularity: int = 50) -> Dict[str, Any]:
    return {
        "id": track_id,
        "uri": f"spotify:track:{track_id}",
        "name": name,
        "artists": [
            {"id": artist_id, "name": artist_name, "uri": f"spotify:artist:{artist_id}"}
            for artist_id, artist_name in artists
        ],
        "album": {"id": f"album-{track_id}", "name": f"{name} (Album)", "release_date": "2020-01-01"},
        "duration_ms": 200000,
        "popularity": popularity,
        "explicit": False,
        "preview_url": None,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }


def make_artist(artist_id: str, name: str, genres: List[str], popularity: int = 40) -> Dict[str, Any]:
    return {
        "id": artist_id,
        "uri": f"spotify:artist:{artist_id}",
        "name": name,
        "genres": genres,
        "popularity": popularity,
        "followers": {"total": 1000},
        "images": [],
        "external_urls": {"spotify": f"https://open.spotify.com/artist/{artist_id}"},
    }


class FakeCatalog:
    """
    httpx.MockTransport handler emulating the token, tracks, artists and
    audio-features endpoints. Responses queued in ``queued`` are returned
    (in order) for data requests before the normal lookup.
    """

    def __init__(self, tracks=None, artists=None, audio_features=None):
        self.tracks: Dict[str, Dict[str, Any]] = dict(tracks or {})
        self.artists: Dict[str, Dict[str, Any]] = dict(artists or {})
        self.audio_features: Dict[str, Dict[str, Any]] = dict(audio_features or {})
        self.queued: List[httpx.Response] = []
        self.requests: List[httpx.Request] = []
        self.token_requests = 0
        self.token_status = 200

    @property
    def data_requests(self) -> List[httpx.Request]:
        return [request for request in self.requests if not request.url.path.endswith("/api/token")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path.endswith("/api/token"):
            self.token_requests += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={
                "access_token": f"token-{self.token_requests}",
                "token_type": "Bearer",
                "expires_in": 3600,
            })

        if self.queued:
            return self.queued.pop(0)

        ids = request.url.params.get("ids", "").split(",")
        if request.url.path.endswith("/tracks"):
            return httpx.Response(200, json={"tracks": [self.tracks.get(i) for i in ids]})
        if request.url.path.endswith("/artists"):
            return httpx.Response(200, json={"artists": [self.artists.get(i) for i in ids]})
        if request.url.path.endswith("/audio-features"):
            return httpx.Response(200, json={"audio_features": [self.audio_features.get(i) for i in ids]})
        return httpx.Response(404, json={"error": "not found"})


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested waits"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_catalog():
    return FakeCatalog()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest_asyncio.fixture
async def spotify_client(fake_catalog, sleeper):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_catalog))
    client = SpotifyClient(
        "test-client-id",
        "test-client-secret",
        http_client=http_client,
        batch_delay=0.1,
        artist_batch_delay=0.15,
        sleep=sleeper,
    )
    yield client
    await http_client.aclose()
