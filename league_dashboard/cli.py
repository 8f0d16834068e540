"""
Command line entry point: ``league-dashboard <command>``

Exit status is 0 on success and 1 when configuration or catalog
authentication fails.
"""

import argparse
import asyncio
import sys
from typing import Any, Awaitable, Callable, List, Optional

import structlog
import uvicorn

from .api_clients import create_spotify_client
from .config import Settings, get_settings
from .csv_importer import seed_database
from .database import DocumentStore, MongoConnection
from .enrichment_pipeline import EnrichmentPipeline
from .exceptions import AuthenticationError, ConfigurationError
from .exporter import export_metadata_csv
from .genre_seeder import genre_statistics, rebuild_genre_taxonomy
from .logging_config import configure_logging
from .main import create_app
from .song_populator import populate_songs
from .validation import validate_collections

logger = structlog.get_logger(__name__)


async def _with_store(settings: Settings, operation: Callable[[DocumentStore], Awaitable[Any]]) -> Any:
    async with MongoConnection(settings) as store:
        return await operation(store)


async def _with_pipeline(settings: Settings, operation: Callable[[EnrichmentPipeline], Awaitable[Any]]) -> Any:
    # Credentials are checked before the database is touched
    client = create_spotify_client(settings)
    async with client:
        async with MongoConnection(settings) as store:
            return await operation(EnrichmentPipeline(store, client))


# ===================
# COMMANDS
# ===================
async def cmd_seed(args, settings: Settings) -> None:
    data_dir = args.data_dir or settings.data_dir
    leagues = await _with_store(settings, lambda store: seed_database(store, data_dir))
    logger.info("Seeding complete", leagues=leagues)


async def cmd_fetch_metadata(args, settings: Settings) -> None:
    async def operation(pipeline: EnrichmentPipeline):
        summary = await pipeline.fetch_track_metadata(force=args.force, limit=args.limit)
        coverage = await pipeline.coverage()
        logger.info("Metadata fetch finished", **summary.to_dict(), coverage=coverage.to_dict())

    await _with_pipeline(settings, operation)


async def cmd_fetch_genres(args, settings: Settings) -> None:
    async def operation(pipeline: EnrichmentPipeline):
        summary = await pipeline.fetch_artist_metadata(force=args.force)
        propagation = await pipeline.propagate_genres()
        logger.info("Genre fetch finished", artists=summary.to_dict(), genres=propagation.to_dict())

    await _with_pipeline(settings, operation)


async def cmd_seed_genres(args, settings: Settings) -> None:
    summary = await _with_store(settings, rebuild_genre_taxonomy)
    logger.info("Genre seeding finished", **summary.to_dict())


async def cmd_populate_songs(args, settings: Settings) -> None:
    summary = await _with_store(settings, populate_songs)
    logger.info("Song population finished", **summary.to_dict())


async def cmd_update_popularity(args, settings: Settings) -> None:
    summary = await _with_pipeline(settings, lambda pipeline: pipeline.refresh_popularity())
    logger.info("Popularity update finished", **summary.to_dict())


async def cmd_fetch_audio_features(args, settings: Settings) -> None:
    summary = await _with_pipeline(settings, lambda pipeline: pipeline.fetch_audio_features(force=args.force))
    logger.info("Audio features fetch finished", **summary.to_dict())


async def cmd_enrich(args, settings: Settings) -> None:
    summary = await _with_pipeline(settings, lambda pipeline: pipeline.run(force=args.force, limit=args.limit))
    logger.info("Enrichment finished", **summary.to_dict())


async def cmd_validate(args, settings: Settings) -> None:
    report = await _with_store(settings, validate_collections)
    invalid = sum(counts["invalid"] for counts in report.values())
    logger.info("Validation finished", invalid=invalid, collections=report)


async def cmd_export_metadata(args, settings: Settings) -> None:
    rows = await _with_store(settings, lambda store: export_metadata_csv(store, args.output))
    logger.info("Export finished", rows=rows, path=args.output)


async def cmd_genre_stats(args, settings: Settings) -> None:
    stats = await _with_store(settings, genre_statistics)
    logger.info("Genre statistics", **stats)


# ===================
# PARSER
# ===================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="league-dashboard", description="Music league dashboard tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    seed = subparsers.add_parser("seed", help="Reload league CSV exports into the database")
    seed.add_argument("--data-dir", help="Directory holding league-<n>-Data folders (default: DATA_DIR)")
    seed.set_defaults(handler=cmd_seed)

    fetch_metadata = subparsers.add_parser("fetch-metadata", help="Fetch track metadata for submitted songs")
    fetch_metadata.add_argument("--force", action="store_true", help="Re-fetch tracks that already have metadata")
    fetch_metadata.add_argument("--limit", type=int, help="Fetch at most N tracks")
    fetch_metadata.set_defaults(handler=cmd_fetch_metadata)

    fetch_genres = subparsers.add_parser("fetch-genres", help="Fetch artist metadata and tag tracks with genres")
    fetch_genres.add_argument("--force", action="store_true", help="Re-fetch artists that already have metadata")
    fetch_genres.set_defaults(handler=cmd_fetch_genres)

    subparsers.add_parser("seed-genres", help="Rebuild the genre taxonomy").set_defaults(handler=cmd_seed_genres)
    subparsers.add_parser("populate-songs", help="Rebuild derived songs").set_defaults(handler=cmd_populate_songs)
    subparsers.add_parser(
        "update-popularity", help="Refresh popularity of stored tracks"
    ).set_defaults(handler=cmd_update_popularity)

    audio = subparsers.add_parser("fetch-audio-features", help="Fetch audio features for stored tracks")
    audio.add_argument("--force", action="store_true", help="Re-fetch tracks that already have features")
    audio.set_defaults(handler=cmd_fetch_audio_features)

    enrich = subparsers.add_parser("enrich", help="Run the full enrichment pipeline")
    enrich.add_argument("--force", action="store_true", help="Re-fetch everything")
    enrich.add_argument("--limit", type=int, help="Fetch at most N new tracks")
    enrich.set_defaults(handler=cmd_enrich)

    subparsers.add_parser("validate", help="Validate stored documents").set_defaults(handler=cmd_validate)

    export = subparsers.add_parser("export-metadata", help="Export track metadata to CSV")
    export.add_argument("--output", default="data/song_metadata.csv", help="Output CSV path")
    export.set_defaults(handler=cmd_export_metadata)

    subparsers.add_parser("genre-stats", help="Show genre coverage statistics").set_defaults(handler=cmd_genre_stats)

    serve = subparsers.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, help="Port (default: PORT)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    if args.command == "serve":
        uvicorn.run(
            create_app(settings),
            host=args.host,
            port=args.port or settings.port,
            log_level=settings.log_level.lower()
        )
        return 0

    try:
        asyncio.run(args.handler(args, settings))
    except (ConfigurationError, AuthenticationError) as e:
        logger.error("Command failed", command=args.command, error_type=type(e).__name__, error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user", command=args.command)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
