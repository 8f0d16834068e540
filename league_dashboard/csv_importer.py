"""
CSV import of league exports

Expected layout under the data directory::

    league-1-Data/competitors.csv   ID, Name
    league-1-Data/rounds.csv        ID, Created, Name, Description, Playlist URL
    league-1-Data/submissions.csv   Spotify URI, Title, Album, Artist(s), Submitter ID, Created, Comment, Round ID
    league-1-Data/votes.csv         Spotify URI, Voter ID, Created, Points Assigned, Comment, Round ID

League data collections are cleared before import; enrichment collections
(metadata, artists, genres, songs) are kept.
"""

import asyncio
import csv
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import structlog
from pydantic import ValidationError

from .database import Collections, DocumentStore
from .exceptions import ConfigurationError, DataIntegrityError
from .models import League, Round, Submission, Vote

logger = structlog.get_logger(__name__)

LEAGUE_DIR_PATTERN = re.compile(r"^league-(\d+)-Data$")


def discover_league_dirs(data_dir: Union[str, Path]) -> List[Tuple[int, Path]]:
    """(league_id, path) for every league-<n>-Data directory, ordered by id"""
    root = Path(data_dir)
    if not root.is_dir():
        return []

    found = []
    for child in root.iterdir():
        match = LEAGUE_DIR_PATTERN.match(child.name)
        if match and child.is_dir():
            found.append((int(match.group(1)), child))
    return sorted(found)


def read_csv(path: Path) -> List[Dict[str, str]]:
    if not path.exists():
        logger.warning("CSV file missing, skipping", path=str(path))
        return []

    with open(path, newline="", encoding="utf-8-sig") as handle:
        return [
            row for row in csv.DictReader(handle)
            if any((value or "").strip() for value in row.values())
        ]


def parse_created(value: Optional[str]) -> Optional[datetime]:
    if not value or not value.strip():
        return None
    try:
        created = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable timestamp", value=value)
        return None
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


def parse_points(value: Optional[str]) -> int:
    try:
        return max(int(str(value).strip()), 0)
    except (TypeError, ValueError):
        return 0


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _check_round(round_id: str, league_rounds: Set[str], league_id: int, kind: str) -> None:
    if round_id not in league_rounds:
        raise DataIntegrityError(
            f"{kind} references round {round_id!r} which is not a round of league {league_id}",
            document_id=round_id,
        )


async def import_league(store: DocumentStore, league_id: int, league_dir: Path) -> Dict[str, Any]:
    name = f"League {league_id}"
    await store.insert_many(Collections.LEAGUES, [League(id=league_id, name=name).to_document()])
    result: Dict[str, Any] = {"leagueId": league_id, "name": name, "rejected": 0}

    # Competitors may belong to several leagues
    operations = []
    for row in await asyncio.to_thread(read_csv, league_dir / "competitors.csv"):
        competitor_id = _clean(row.get("ID"))
        if not competitor_id:
            continue
        operations.append({
            "filter": {"_id": competitor_id},
            "update": {
                "$set": {"name": _clean(row.get("Name")) or competitor_id},
                "$addToSet": {"leagues": league_id},
            },
        })
    await store.bulk_upsert(Collections.COMPETITORS, operations)
    result["competitors"] = len(operations)

    # Round ids are global; a clash would move the round to another league
    taken_round_ids = set(await store.distinct(Collections.ROUNDS, "_id"))
    rounds = []
    for row in await asyncio.to_thread(read_csv, league_dir / "rounds.csv"):
        round_id = _clean(row.get("ID"))
        if not round_id:
            continue
        try:
            if round_id in taken_round_ids:
                raise DataIntegrityError(
                    f"Round {round_id!r} of league {league_id} is already imported",
                    document_id=round_id,
                )
            rounds.append(Round(
                id=round_id,
                league_id=league_id,
                name=_clean(row.get("Name")),
                description=_clean(row.get("Description")),
                playlist_url=_clean(row.get("Playlist URL")),
                created=parse_created(row.get("Created")),
            ))
            taken_round_ids.add(round_id)
        except (DataIntegrityError, ValidationError) as e:
            result["rejected"] += 1
            logger.warning("Rejected round row", league_id=league_id, round_id=round_id, error=str(e))
    result["rounds"] = await store.insert_many(Collections.ROUNDS, [r.to_document() for r in rounds])
    league_rounds = {r.id for r in rounds}

    submissions = []
    for row in await asyncio.to_thread(read_csv, league_dir / "submissions.csv"):
        try:
            round_id = row.get("Round ID") or ""
            _check_round(round_id, league_rounds, league_id, "Submission")
            artist = _clean(row.get("Artist(s)"))
            submissions.append(Submission(
                round_id=round_id,
                league_id=league_id,
                submitter_id=row.get("Submitter ID") or "",
                spotify_uri=(row.get("Spotify URI") or "").strip(),
                title=_clean(row.get("Title")),
                artists=[artist] if artist else [],
                album=_clean(row.get("Album")),
                comment=_clean(row.get("Comment")),
                created=parse_created(row.get("Created")),
            ).to_document(exclude={"id"}))
        except (DataIntegrityError, ValidationError) as e:
            result["rejected"] += 1
            logger.warning("Rejected submission row", league_id=league_id, error=str(e))
    result["submissions"] = await store.insert_many(Collections.SUBMISSIONS, submissions)

    votes = []
    for row in await asyncio.to_thread(read_csv, league_dir / "votes.csv"):
        try:
            round_id = row.get("Round ID") or ""
            _check_round(round_id, league_rounds, league_id, "Vote")
            votes.append(Vote(
                round_id=round_id,
                league_id=league_id,
                voter_id=row.get("Voter ID") or "",
                spotify_uri=(row.get("Spotify URI") or "").strip(),
                points_assigned=parse_points(row.get("Points Assigned")),
                comment=_clean(row.get("Comment")),
                created=parse_created(row.get("Created")),
            ).to_document(exclude={"id"}))
        except (DataIntegrityError, ValidationError) as e:
            result["rejected"] += 1
            logger.warning("Rejected vote row", league_id=league_id, error=str(e))
    result["votes"] = await store.insert_many(Collections.VOTES, votes)

    logger.info("League imported", **result)
    return result


async def seed_database(store: DocumentStore, data_dir: Union[str, Path]) -> List[Dict[str, Any]]:
    """Reload every league found under ``data_dir``; returns per-league counts"""
    league_dirs = discover_league_dirs(data_dir)
    if not league_dirs:
        raise ConfigurationError(f"No league-<n>-Data directories found under {data_dir}")

    for name in Collections.LEAGUE_DATA:
        deleted = await store.delete_many(name)
        logger.info("Cleared collection", collection=name, deleted=deleted)

    results = []
    for league_id, league_dir in league_dirs:
        results.append(await import_league(store, league_id, league_dir))
    return results
