"""
Catalog enrichment pipeline

Stages (each re-runnable; "needed" is always recomputed from stored state):
1. Track discovery    - distinct submission URIs without TrackMetadata
2. Track fetch        - catalog lookup, upsert by spotifyUri
3. Artist discovery   - distinct artist ids on TrackMetadata without ArtistMetadata
4. Artist fetch       - catalog lookup, upsert by artistId, incremental genre propagation
5. Genre propagation  - primaryGenre / allGenres from the full ArtistMetadata set
6. Taxonomy rebuild   - see genre_seeder
7. Song rebuild       - see song_populator

A dropped catalog batch never aborts a run; the summary carries the failure
count and the metadata coverage. Missing or rejected credentials do.
"""

import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from .api_clients import SpotifyClient, requested_id
from .database import Collections, DocumentStore
from .exceptions import ConfigurationError
from .genre_seeder import rebuild_genre_taxonomy
from .metrics import enrichment_items_total, enrichment_stage_duration
from .models import (
    ArtistCredit,
    ArtistMetadata,
    TrackMetadata,
    audio_features_document,
    dedupe,
    normalize_artists,
    uri_to_id,
    utcnow,
)
from .results import CoverageReport, EnrichmentSummary, StageSummary
from .song_populator import populate_songs

logger = structlog.get_logger(__name__)


def derive_genres(
    credits: List[ArtistCredit],
    genres_by_artist: Dict[str, List[str]]
) -> Tuple[Optional[str], List[str]]:
    """
    Genre fields for a track from its artists, in artist order.

    Returns (primary_genre, all_genres): the first genre encountered and the
    de-duplicated union. Artists without ArtistMetadata contribute nothing.
    """
    collected: List[str] = []
    for credit in credits:
        if credit.id and credit.id in genres_by_artist:
            collected.extend(genres_by_artist[credit.id])

    all_genres = dedupe(collected)
    return (all_genres[0] if all_genres else None), all_genres


class EnrichmentPipeline:
    """Populates TrackMetadata and ArtistMetadata and derives genre fields"""

    def __init__(self, store: DocumentStore, client: Optional[SpotifyClient] = None):
        self.store = store
        self.client = client

    def _require_client(self) -> SpotifyClient:
        if self.client is None:
            raise ConfigurationError("Catalog client is not configured")
        return self.client

    @staticmethod
    def _progress(stage: str):
        def report(progress: Dict[str, int]) -> None:
            logger.info("Catalog fetch progress", stage=stage, **progress)
        return report

    @staticmethod
    def _record_outcome(summary: StageSummary) -> None:
        if summary.succeeded:
            enrichment_items_total.labels(stage=summary.stage, outcome="success").inc(summary.succeeded)
        if summary.failed:
            enrichment_items_total.labels(stage=summary.stage, outcome="failure").inc(summary.failed)

    # ===================
    # TRACKS
    # ===================
    async def discover_tracks(self, force: bool = False) -> List[str]:
        """Submission URIs still lacking TrackMetadata (all of them when forced)"""
        uris = sorted(uri for uri in await self.store.distinct(Collections.SUBMISSIONS, "spotifyUri") if uri)
        if force:
            return uris

        existing = set(await self.store.distinct(Collections.TRACK_METADATA, "spotifyUri"))
        return [uri for uri in uris if uri not in existing]

    async def fetch_track_metadata(self, force: bool = False, limit: Optional[int] = None) -> StageSummary:
        needed = await self.discover_tracks(force)
        if limit:
            needed = needed[:limit]

        summary = StageSummary(stage="tracks", requested=len(needed))
        if not needed:
            logger.info("All submitted tracks already have metadata")
            return summary

        client = self._require_client()
        uris_by_id = {uri_to_id(uri): uri for uri in needed}

        with enrichment_stage_duration.labels(stage="tracks").time():
            records = await client.fetch_all_tracks(list(uris_by_id), on_progress=self._progress("tracks"))

            operations = []
            for record in records:
                uri = uris_by_id.get(requested_id(record))
                if uri is None:
                    logger.warning("Catalog returned an unrequested track", track_id=record.get("id"))
                    continue

                fields = TrackMetadata.from_catalog(record, uri).catalog_fields()
                update = {"$set": fields} if force else {"$setOnInsert": fields}
                operations.append({"filter": {"spotifyUri": uri}, "update": update})

            result = await self.store.bulk_upsert(Collections.TRACK_METADATA, operations)

        summary.succeeded = len(operations)
        summary.failed = len(needed) - len(operations)
        summary.upserted = result["upsertedCount"]
        summary.modified = result["modifiedCount"]
        self._record_outcome(summary)

        logger.info(
            "Track metadata fetch complete",
            requested=summary.requested,
            succeeded=summary.succeeded,
            failed=summary.failed,
            force=force,
        )
        return summary

    # ===================
    # ARTISTS
    # ===================
    async def discover_artists(self, force: bool = False) -> List[str]:
        """Artist ids credited on TrackMetadata still lacking ArtistMetadata"""
        tracks = await self.store.find(Collections.TRACK_METADATA, {}, {"artists": 1})
        artist_ids = dedupe(
            credit.id
            for track in tracks
            for credit in normalize_artists(track.get("artists"))
            if credit.id
        )
        if force:
            return artist_ids

        existing = set(await self.store.distinct(Collections.ARTIST_METADATA, "artistId"))
        return [artist_id for artist_id in artist_ids if artist_id not in existing]

    async def fetch_artist_metadata(self, force: bool = False) -> StageSummary:
        needed = await self.discover_artists(force)
        summary = StageSummary(stage="artists", requested=len(needed))
        if not needed:
            logger.info("All credited artists already have metadata")
            return summary

        client = self._require_client()

        with enrichment_stage_duration.labels(stage="artists").time():
            records = await client.fetch_all_artists(needed, on_progress=self._progress("artists"))
            artists = [ArtistMetadata.from_catalog(record) for record in records if record.get("id")]
            result = await self.upsert_artists(artists)

        summary.succeeded = len(artists)
        summary.failed = len(needed) - len(artists)
        summary.upserted = result["upsertedCount"]
        summary.modified = result["modifiedCount"]
        self._record_outcome(summary)

        propagation = await self.propagate_genres(artist_ids=[artist.artist_id for artist in artists])
        summary.details["tracksTagged"] = propagation.succeeded

        logger.info(
            "Artist metadata fetch complete",
            requested=summary.requested,
            succeeded=summary.succeeded,
            failed=summary.failed,
            tracks_tagged=propagation.succeeded,
        )
        return summary

    async def upsert_artists(self, artists: Iterable[ArtistMetadata]) -> Dict[str, int]:
        """Last write wins on every field except the first-fetch timestamp"""
        operations = []
        for artist in artists:
            operations.append({
                "filter": {"artistId": artist.artist_id},
                "update": {
                    "$set": artist.to_document(exclude={"fetched_at"}),
                    "$setOnInsert": {"fetchedAt": artist.fetched_at or utcnow()},
                },
            })
        return await self.store.bulk_upsert(Collections.ARTIST_METADATA, operations)

    # ===================
    # GENRES
    # ===================
    async def propagate_genres(self, artist_ids: Optional[Iterable[str]] = None) -> StageSummary:
        """
        Recompute primaryGenre / allGenres on TrackMetadata.

        With ``artist_ids`` only tracks crediting one of those artists are
        rewritten; their genres still come from every stored artist.
        """
        if artist_ids is not None:
            artist_ids = list(artist_ids)
            if not artist_ids:
                return StageSummary(stage="genres")
            track_filter: Dict[str, Any] = {"artists.id": {"$in": artist_ids}}
        else:
            track_filter = {}

        artists = await self.store.find(Collections.ARTIST_METADATA, {}, {"artistId": 1, "genres": 1})
        genres_by_artist = {
            artist["artistId"]: artist.get("genres") or []
            for artist in artists
            if artist.get("artistId")
        }

        tracks = await self.store.find(Collections.TRACK_METADATA, track_filter, {"spotifyUri": 1, "artists": 1})
        summary = StageSummary(stage="genres", requested=len(tracks))

        operations = []
        untagged = 0
        for track in tracks:
            primary_genre, all_genres = derive_genres(normalize_artists(track.get("artists")), genres_by_artist)
            if primary_genre is None:
                untagged += 1
            operations.append({
                "filter": {"spotifyUri": track["spotifyUri"]},
                "update": {"$set": {"primaryGenre": primary_genre, "allGenres": all_genres}},
            })

        result = await self.store.bulk_upsert(Collections.TRACK_METADATA, operations)
        summary.succeeded = len(operations) - untagged
        summary.modified = result["modifiedCount"]
        summary.details["withoutGenre"] = untagged

        logger.info(
            "Genre propagation complete",
            scope="incremental" if artist_ids is not None else "full",
            tracks=len(tracks),
            without_genre=untagged,
        )
        return summary

    # ===================
    # REFRESH PASSES
    # ===================
    async def refresh_popularity(self) -> StageSummary:
        """Re-fetch popularity for every stored track (update-only)"""
        uris = await self.store.distinct(Collections.TRACK_METADATA, "spotifyUri")
        summary = StageSummary(stage="popularity", requested=len(uris))
        if not uris:
            return summary

        client = self._require_client()
        uris_by_id = {uri_to_id(uri): uri for uri in uris}

        with enrichment_stage_duration.labels(stage="popularity").time():
            records = await client.fetch_all_tracks(list(uris_by_id), on_progress=self._progress("popularity"))

            now = utcnow()
            operations = []
            for record in records:
                uri = uris_by_id.get(requested_id(record))
                if uri is None or record.get("popularity") is None:
                    continue
                operations.append({
                    "filter": {"spotifyUri": uri},
                    "update": {"$set": {"popularity": record["popularity"], "popularityUpdated": now}},
                })

            result = await self.store.bulk_upsert(Collections.TRACK_METADATA, operations, upsert=False)

        summary.succeeded = len(operations)
        summary.failed = len(uris) - len(operations)
        summary.modified = result["modifiedCount"]
        self._record_outcome(summary)
        logger.info("Popularity refresh complete", updated=summary.succeeded, failed=summary.failed)
        return summary

    async def fetch_audio_features(self, force: bool = False) -> StageSummary:
        """Fill audio-feature fields on existing TrackMetadata (never creates documents)"""
        track_filter = {} if force else {"energy": None}
        uris = await self.store.distinct(Collections.TRACK_METADATA, "spotifyUri", track_filter)
        summary = StageSummary(stage="audio_features", requested=len(uris))
        if not uris:
            logger.info("All stored tracks already have audio features")
            return summary

        client = self._require_client()
        uris_by_id = {uri_to_id(uri): uri for uri in uris}

        with enrichment_stage_duration.labels(stage="audio_features").time():
            records = await client.fetch_all_audio_features(
                list(uris_by_id), on_progress=self._progress("audio_features")
            )

            now = utcnow()
            operations = []
            for record in records:
                uri = uris_by_id.get(record.get("id"))
                features = audio_features_document(record)
                if uri is None or not features:
                    continue
                features["audioFeaturesUpdated"] = now
                operations.append({"filter": {"spotifyUri": uri}, "update": {"$set": features}})

            result = await self.store.bulk_upsert(Collections.TRACK_METADATA, operations, upsert=False)

        summary.succeeded = len(operations)
        summary.failed = len(uris) - len(operations)
        summary.modified = result["modifiedCount"]
        self._record_outcome(summary)
        logger.info("Audio features fetch complete", updated=summary.succeeded, failed=summary.failed)
        return summary

    # ===================
    # REPORTING / FULL RUN
    # ===================
    async def coverage(self) -> CoverageReport:
        """Share of distinct submitted URIs that have TrackMetadata"""
        uris = [uri for uri in await self.store.distinct(Collections.SUBMISSIONS, "spotifyUri") if uri]
        if not uris:
            return CoverageReport(total_uris=0, with_metadata=0, percentage=0.0)

        with_metadata = await self.store.count(Collections.TRACK_METADATA, {"spotifyUri": {"$in": uris}})
        return CoverageReport(
            total_uris=len(uris),
            with_metadata=with_metadata,
            percentage=round(with_metadata / len(uris) * 100, 1),
        )

    async def run(self, force: bool = False, limit: Optional[int] = None) -> EnrichmentSummary:
        """Stages 1-7 in order"""
        summary = EnrichmentSummary(run_id=uuid.uuid4().hex[:12])
        structlog.contextvars.bind_contextvars(run_id=summary.run_id)
        try:
            client = self._require_client()
            await client.authenticate()

            logger.info("Enrichment run started", force=force, limit=limit)
            summary.stages.append(await self.fetch_track_metadata(force=force, limit=limit))
            summary.stages.append(await self.fetch_artist_metadata(force=force))
            summary.stages.append(await self.propagate_genres())
            summary.stages.append(await rebuild_genre_taxonomy(self.store))
            summary.stages.append(await populate_songs(self.store))
            summary.coverage = await self.coverage()

            logger.info(
                "Enrichment run complete",
                failed=summary.failed,
                coverage_percentage=summary.coverage.percentage,
            )
            return summary
        finally:
            structlog.contextvars.unbind_contextvars("run_id")
