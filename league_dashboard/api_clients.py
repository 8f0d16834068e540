"""
Catalog API client with client-credentials auth, batching and retry
"""

import asyncio
import base64
import json
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx
import structlog

from .config import Settings
from .exceptions import AuthenticationError, TransientFetchError
from .metrics import catalog_api_calls_total, catalog_batches_dropped_total
from .retry_handler import fetch_with_backoff

logger = structlog.get_logger(__name__)

# ===================
# BATCH CONFIGURATION
# ===================
TRACK_BATCH_SIZE = 50
ARTIST_BATCH_SIZE = 50
AUDIO_FEATURES_BATCH_SIZE = 100
TOKEN_EXPIRY_MARGIN = 300  # seconds before expiry at which the token is renewed

ProgressCallback = Callable[[Dict[str, int]], Any]


def requested_id(record: Dict[str, Any]) -> str:
    """Id the caller asked for; relinked tracks report it under linked_from"""
    linked_from = record.get("linked_from") or {}
    return linked_from.get("id") or record["id"]


# ===================
# SPOTIFY CLIENT
# ===================
class SpotifyClient:
    """Spotify Web API client (client-credentials OAuth, batched lookups)"""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = "https://api.spotify.com/v1",
        token_url: str = "https://accounts.spotify.com/api/token",
        batch_delay: float = 0.1,
        artist_batch_delay: float = 0.15,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self.batch_delay = batch_delay
        self.artist_batch_delay = artist_batch_delay
        self.sleep = sleep
        self.clock = clock

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

        self.access_token: Optional[str] = None
        self.token_expires_at: float = 0.0

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    # ===================
    # AUTHENTICATION
    # ===================
    async def authenticate(self, force: bool = False) -> str:
        """
        Return a bearer token, requesting a new one when needed.

        The cached token is reused while ``now < expires_at - 300s``.
        Network failures and non-200 responses from the token endpoint raise
        AuthenticationError and are not retried here.
        """
        if not force and self.access_token and self.clock() < self.token_expires_at - TOKEN_EXPIRY_MARGIN:
            return self.access_token

        auth_str = f"{self.client_id}:{self.client_secret}"
        auth_base64 = base64.b64encode(auth_str.encode("utf-8")).decode("utf-8")
        headers = {
            "Authorization": f"Basic {auth_base64}",
            "Content-Type": "application/x-www-form-urlencoded",
        }

        try:
            response = await self.http_client.post(
                self.token_url,
                headers=headers,
                data={"grant_type": "client_credentials"},
            )
        except httpx.HTTPError as e:
            logger.error("Spotify token request failed", error=str(e))
            raise AuthenticationError(f"Failed to reach token endpoint: {e}") from e

        catalog_api_calls_total.labels(endpoint="token", status=str(response.status_code)).inc()
        if response.status_code != 200:
            logger.error("Spotify rejected client credentials", status=response.status_code)
            raise AuthenticationError(f"Failed to get Spotify token: {response.status_code}")

        try:
            token_data = response.json()
            self.access_token = token_data["access_token"]
            expires_in = int(token_data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthenticationError(f"Malformed token response: {e}") from e

        self.token_expires_at = self.clock() + expires_in
        logger.info("Obtained Spotify access token", expires_in=expires_in)
        return self.access_token

    # ===================
    # SINGLE BATCHES
    # ===================
    async def fetch_tracks_batch(self, track_ids: List[str]) -> List[Dict[str, Any]]:
        """GET /tracks?ids=... for up to 50 ids; unknown ids are dropped"""
        return await self._get_batch("tracks", "tracks", track_ids, TRACK_BATCH_SIZE)

    async def fetch_artists_batch(self, artist_ids: List[str]) -> List[Dict[str, Any]]:
        """GET /artists?ids=... for up to 50 ids; unknown ids are dropped"""
        return await self._get_batch("artists", "artists", artist_ids, ARTIST_BATCH_SIZE)

    async def fetch_audio_features_batch(self, track_ids: List[str]) -> List[Dict[str, Any]]:
        """GET /audio-features?ids=... for up to 100 ids"""
        return await self._get_batch("audio-features", "audio_features", track_ids, AUDIO_FEATURES_BATCH_SIZE)

    async def _get_batch(
        self,
        endpoint: str,
        result_key: str,
        ids: List[str],
        max_size: int
    ) -> List[Dict[str, Any]]:
        if not ids:
            return []
        if len(ids) > max_size:
            raise ValueError(f"{endpoint} batch accepts at most {max_size} ids, got {len(ids)}")

        url = f"{self.base_url}/{endpoint}"
        params = {"ids": ",".join(ids)}
        refreshed = False

        while True:
            token = await self.authenticate(force=refreshed)

            async def _api_call(token=token):
                return await self.http_client.get(
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )

            response = await fetch_with_backoff(
                _api_call,
                sleep=self.sleep,
                logger_context={"api": "spotify", "endpoint": endpoint, "batch_size": len(ids)},
            )
            catalog_api_calls_total.labels(endpoint=endpoint, status=str(response.status_code)).inc()

            if response.status_code == 401:
                if refreshed:
                    raise AuthenticationError(f"Spotify rejected a freshly issued token on /{endpoint}")
                logger.info("Access token rejected, refreshing once", endpoint=endpoint)
                refreshed = True
                continue

            response.raise_for_status()
            break

        items = response.json().get(result_key) or []
        found = []
        missing = []
        for item_id, item in zip(ids, items):
            if item:
                found.append(item)
            else:
                missing.append(item_id)

        if missing:
            logger.warning(
                "Catalog returned no record for some ids",
                endpoint=endpoint,
                missing_ids=missing,
            )
        return found

    # ===================
    # FULL RUNS
    # ===================
    async def fetch_all_tracks(
        self,
        track_ids: Iterable[str],
        on_progress: Optional[ProgressCallback] = None
    ) -> List[Dict[str, Any]]:
        return await self._fetch_all(
            "tracks", list(track_ids), TRACK_BATCH_SIZE, self.fetch_tracks_batch, self.batch_delay, on_progress
        )

    async def fetch_all_artists(
        self,
        artist_ids: Iterable[str],
        on_progress: Optional[ProgressCallback] = None
    ) -> List[Dict[str, Any]]:
        return await self._fetch_all(
            "artists", list(artist_ids), ARTIST_BATCH_SIZE, self.fetch_artists_batch, self.artist_batch_delay, on_progress
        )

    async def fetch_all_audio_features(
        self,
        track_ids: Iterable[str],
        on_progress: Optional[ProgressCallback] = None
    ) -> List[Dict[str, Any]]:
        return await self._fetch_all(
            "audio-features", list(track_ids), AUDIO_FEATURES_BATCH_SIZE,
            self.fetch_audio_features_batch, self.batch_delay, on_progress
        )

    async def _fetch_all(
        self,
        endpoint: str,
        ids: List[str],
        batch_size: int,
        fetch_batch: Callable[[List[str]], Awaitable[List[Dict[str, Any]]]],
        delay: float,
        on_progress: Optional[ProgressCallback]
    ) -> List[Dict[str, Any]]:
        """
        Fetch ``ids`` sequentially in batches with a pause between batches.

        Batches that still fail after retries are dropped and logged, so the
        result may be shorter than the input. AuthenticationError propagates.
        """
        total = len(ids)
        results: List[Dict[str, Any]] = []

        for start in range(0, total, batch_size):
            batch = ids[start:start + batch_size]
            try:
                results.extend(await fetch_batch(batch))
            except (TransientFetchError, httpx.HTTPError, json.JSONDecodeError) as e:
                catalog_batches_dropped_total.labels(endpoint=endpoint).inc()
                logger.error(
                    "Dropping catalog batch after failure",
                    endpoint=endpoint,
                    batch_start=start,
                    batch_size=len(batch),
                    error=str(e),
                )

            current = min(start + batch_size, total)
            if on_progress:
                on_progress({
                    "current": current,
                    "total": total,
                    "percentage": round(current / total * 100),
                })

            if current < total and delay > 0:
                await self.sleep(delay)

        return results


def create_spotify_client(settings: Settings) -> SpotifyClient:
    """Build a client from settings; raises ConfigurationError without credentials"""
    client_id, client_secret = settings.require_catalog_credentials()
    return SpotifyClient(
        client_id,
        client_secret,
        batch_delay=settings.catalog_batch_delay,
        timeout=settings.catalog_timeout,
    )
