"""
Unit tests for the league CSV import.
"""

from datetime import datetime, timezone

import pytest

from league_dashboard import csv_importer
from league_dashboard.csv_importer import (
    discover_league_dirs,
    parse_created,
    parse_points,
    seed_database,
)
from league_dashboard.database import Collections
from league_dashboard.exceptions import ConfigurationError

COMPETITORS = "ID,Name\nalice,Alice\nbob,Bob\n"
ROUNDS = (
    "ID,Created,Name,Description,Playlist URL\n"
    "R1,2024-01-01T12:00:00Z,Covers,Play a cover,https://open.spotify.com/playlist/x\n"
    "R2,2024-01-08T12:00:00Z,Debuts,,\n"
)
SUBMISSIONS = (
    "Spotify URI,Title,Album,Artist(s),Submitter ID,Created,Comment,Round ID\n"
    "spotify:track:one,One,First Album,Band,alice,2024-01-02T10:00:00Z,great,R1\n"
    "spotify:track:two,Two,Second Album,Duo,bob,2024-01-09T10:00:00Z,,R2\n"
    "spotify:track:ghost,Ghost,,Nobody,bob,2024-01-09T10:00:00Z,,R404\n"
    ",,,,,,,\n"
)
VOTES = (
    "Spotify URI,Voter ID,Created,Points Assigned,Comment,Round ID\n"
    "spotify:track:one,bob,2024-01-03T10:00:00Z,3,,R1\n"
    "spotify:track:two,alice,2024-01-10T10:00:00Z,abc,,R2\n"
    "spotify:track:one,bob,2024-01-03T10:00:00Z,2,,R404\n"
)


def write_league(root, league_id, competitors=COMPETITORS, rounds=ROUNDS, submissions=SUBMISSIONS, votes=VOTES):
    league_dir = root / f"league-{league_id}-Data"
    league_dir.mkdir(parents=True)
    (league_dir / "competitors.csv").write_text(competitors, encoding="utf-8")
    (league_dir / "rounds.csv").write_text(rounds, encoding="utf-8")
    (league_dir / "submissions.csv").write_text(submissions, encoding="utf-8")
    (league_dir / "votes.csv").write_text(votes, encoding="utf-8")
    return league_dir


class TestParsing:

    def test_parse_created(self):
        assert parse_created("2024-01-01T12:00:00Z") == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert parse_created("2024-01-01T12:00:00").tzinfo == timezone.utc
        assert parse_created("") is None
        assert parse_created("yesterday") is None

    def test_parse_points(self):
        assert parse_points("5") == 5
        assert parse_points(" 2 ") == 2
        assert parse_points("abc") == 0
        assert parse_points(None) == 0
        assert parse_points("-3") == 0

    def test_discover_league_dirs(self, tmp_path):
        write_league(tmp_path, 10)
        write_league(tmp_path, 2)
        (tmp_path / "league-x-Data").mkdir()
        (tmp_path / "notes.txt").write_text("ignore me")

        assert [league_id for league_id, _ in discover_league_dirs(tmp_path)] == [2, 10]
        assert discover_league_dirs(tmp_path / "absent") == []


class TestSeedDatabase:

    @pytest.mark.asyncio
    async def test_import_counts(self, store, tmp_path):
        write_league(tmp_path, 1)

        results = await seed_database(store, tmp_path)

        assert results == [{
            "leagueId": 1,
            "name": "League 1",
            "rejected": 2,
            "competitors": 2,
            "rounds": 2,
            "submissions": 2,
            "votes": 2,
        }]
        assert await store.count(Collections.LEAGUES) == 1

    @pytest.mark.asyncio
    async def test_rows_reference_league_rounds(self, store, tmp_path):
        write_league(tmp_path, 1)

        await seed_database(store, tmp_path)

        round_ids = set(await store.distinct(Collections.ROUNDS, "_id"))
        assert set(await store.distinct(Collections.SUBMISSIONS, "roundId")) <= round_ids
        assert set(await store.distinct(Collections.VOTES, "roundId")) <= round_ids
        assert await store.distinct(Collections.SUBMISSIONS, "leagueId") == [1]

    @pytest.mark.asyncio
    async def test_document_fields(self, store, tmp_path):
        write_league(tmp_path, 1)

        await seed_database(store, tmp_path)

        round_doc = await store.find_one(Collections.ROUNDS, {"_id": "R1"})
        one = await store.find_one(Collections.SUBMISSIONS, {"spotifyUri": "spotify:track:one"})
        bad_points = await store.find_one(Collections.VOTES, {"roundId": "R2"})
        assert round_doc["playlistUrl"] == "https://open.spotify.com/playlist/x"
        assert round_doc["leagueId"] == 1
        assert one["artists"] == ["Band"]
        assert one["submitterId"] == "alice"
        assert one["comment"] == "great"
        assert bad_points["pointsAssigned"] == 0

    @pytest.mark.asyncio
    async def test_competitor_in_several_leagues(self, store, tmp_path):
        write_league(tmp_path, 1)
        write_league(
            tmp_path,
            2,
            competitors="ID,Name\nalice,Alice Renamed\n",
            rounds="ID,Created,Name,Description,Playlist URL\nL2-R1,2024-02-01T12:00:00Z,Openers,,\n",
            submissions=SUBMISSIONS.splitlines()[0] + "\n",
            votes=VOTES.splitlines()[0] + "\n",
        )

        results = await seed_database(store, tmp_path)

        alice = await store.find_one(Collections.COMPETITORS, {"_id": "alice"})
        assert alice["leagues"] == [1, 2]
        assert alice["name"] == "Alice Renamed"
        assert await store.count(Collections.COMPETITORS) == 2
        assert results[1]["rounds"] == 1

    @pytest.mark.asyncio
    async def test_round_id_taken_by_another_league_is_rejected(self, store, tmp_path):
        write_league(tmp_path, 1)
        write_league(
            tmp_path,
            2,
            rounds=ROUNDS + "R3,2024-02-01T12:00:00Z,Fresh,,\n",
            submissions=SUBMISSIONS + "spotify:track:three,Three,,Trio,alice,2024-02-02T10:00:00Z,,R3\n",
            votes=VOTES + "spotify:track:three,bob,2024-02-03T10:00:00Z,4,,R3\n",
        )

        results = await seed_database(store, tmp_path)

        league_two = results[1]
        assert league_two["rounds"] == 1
        assert league_two["submissions"] == 1
        assert league_two["votes"] == 1
        # R1 and R2 rounds plus every row pointing at R1, R2 or R404
        assert league_two["rejected"] == 2 + 3 + 3
        for round_id in ("R1", "R2"):
            assert (await store.find_one(Collections.ROUNDS, {"_id": round_id}))["leagueId"] == 1
        assert await store.distinct(Collections.SUBMISSIONS, "leagueId", {"roundId": "R1"}) == [1]
        assert (await store.find_one(Collections.ROUNDS, {"_id": "R3"}))["leagueId"] == 2

    @pytest.mark.asyncio
    async def test_repeated_round_within_league_keeps_first(self, store, tmp_path):
        write_league(tmp_path, 1, rounds=ROUNDS + "R1,2024-03-01T12:00:00Z,Duplicate,,\n")

        results = await seed_database(store, tmp_path)

        assert results[0]["rounds"] == 2
        assert results[0]["rejected"] == 2 + 1
        assert (await store.find_one(Collections.ROUNDS, {"_id": "R1"}))["name"] == "Covers"

    @pytest.mark.asyncio
    async def test_reimport_replaces_league_data_and_keeps_enrichment(self, store, tmp_path):
        write_league(tmp_path, 1)
        await store.insert_many(Collections.TRACK_METADATA, [{"spotifyUri": "spotify:track:one", "name": "One"}])

        await seed_database(store, tmp_path)
        await seed_database(store, tmp_path)

        assert await store.count(Collections.SUBMISSIONS) == 2
        assert await store.count(Collections.VOTES) == 2
        assert await store.count(Collections.TRACK_METADATA) == 1
        alice = await store.find_one(Collections.COMPETITORS, {"_id": "alice"})
        assert alice["leagues"] == [1]

    @pytest.mark.asyncio
    async def test_missing_files_are_skipped(self, store, tmp_path):
        league_dir = tmp_path / "league-3-Data"
        league_dir.mkdir()
        (league_dir / "rounds.csv").write_text(ROUNDS, encoding="utf-8")

        results = await seed_database(store, tmp_path)

        assert results[0]["rounds"] == 2
        assert results[0]["submissions"] == 0

    @pytest.mark.asyncio
    async def test_no_league_directories(self, store, tmp_path):
        with pytest.raises(ConfigurationError):
            await seed_database(store, tmp_path)

    @pytest.mark.asyncio
    async def test_files_are_read_off_the_event_loop(self, store, tmp_path, monkeypatch):
        write_league(tmp_path, 1)
        offloaded = []
        real_to_thread = csv_importer.asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append((func, args[0].name))
            return await real_to_thread(func, *args, **kwargs)

        monkeypatch.setattr(csv_importer.asyncio, "to_thread", recording_to_thread)

        await seed_database(store, tmp_path)

        assert offloaded == [
            (csv_importer.read_csv, "competitors.csv"),
            (csv_importer.read_csv, "rounds.csv"),
            (csv_importer.read_csv, "submissions.csv"),
            (csv_importer.read_csv, "votes.csv"),
        ]
