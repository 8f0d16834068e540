"""
Unit tests for league statistics and vote aggregation.
"""

import pytest

from league_dashboard.analytics import (
    competitor_stats,
    league_analytics,
    overview_stats,
    round_half_up,
    round_leaderboard,
)
from league_dashboard.database import Collections

from conftest import URI_NO_METADATA, URI_POP, URI_ROCK, created, insert_league, submission, track_metadata, vote


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.25, 1) == 2.3
    assert round_half_up(2.4) == 2


class TestLeagueAnalytics:

    @pytest.mark.asyncio
    async def test_genre_analysis(self, scored_league):
        analytics = await league_analytics(scored_league, 1)

        assert analytics["genreAnalysis"] == [
            {"genre": "rock", "votes": 8, "submissions": 1, "avgVotes": 8, "relatedGenres": 2},
            {"genre": "pop", "votes": 4, "submissions": 1, "avgVotes": 4, "relatedGenres": 1},
        ]

    @pytest.mark.asyncio
    async def test_missing_metadata_only_skips_genre_and_popularity(self, scored_league):
        analytics = await league_analytics(scored_league, 1)

        artists = [row["artist"] for row in analytics["artistAnalysis"]]
        assert artists == ["Rock Band", "Pop Star", "Obscure Act"]
        assert analytics["artistAnalysis"][2]["votes"] == 2

    @pytest.mark.asyncio
    async def test_popularity_analysis_skips_zero(self, scored_league):
        analytics = await league_analytics(scored_league, 1)

        assert analytics["popularityAnalysis"] == [
            {"title": "Rock Song", "artist": "Rock Band", "votes": 8, "popularity": 70},
        ]

    @pytest.mark.asyncio
    async def test_average_rounds_half_up(self, store):
        first, second = "spotify:track:jazz1", "spotify:track:jazz2"
        await insert_league(
            store,
            league_id=2,
            submissions=[submission(first, league_id=2), submission(second, league_id=2, submitter="bob")],
            votes=[vote(first, 3, league_id=2), vote(second, 2, league_id=2)],
        )
        await store.insert_many(Collections.TRACK_METADATA, [
            track_metadata(first, "One", [{"name": "Trio", "id": "j1"}], primary_genre="jazz", all_genres=["jazz"]),
            track_metadata(second, "Two", [{"name": "Trio", "id": "j1"}], primary_genre="jazz", all_genres=["jazz"]),
        ])

        analytics = await league_analytics(store, 2)

        assert analytics["genreAnalysis"][0]["avgVotes"] == 3
        assert analytics["artistAnalysis"][0] == {"artist": "Trio", "votes": 5, "submissions": 2, "avgVotes": 3}

    @pytest.mark.asyncio
    async def test_ties_keep_submission_order(self, store):
        await insert_league(
            store,
            submissions=[
                submission("spotify:track:b", artists=["Beta"]),
                submission("spotify:track:a", artists=["Alpha"]),
            ],
            votes=[vote("spotify:track:b", 4), vote("spotify:track:a", 4)],
        )

        analytics = await league_analytics(store, 1)

        assert [row["artist"] for row in analytics["artistAnalysis"]] == ["Beta", "Alpha"]

    @pytest.mark.asyncio
    async def test_votes_from_other_leagues_are_ignored(self, scored_league):
        await insert_league(
            scored_league,
            league_id=2,
            submissions=[submission(URI_ROCK, round_id="R9", league_id=2)],
            votes=[vote(URI_ROCK, 10, round_id="R9", league_id=2)],
        )

        analytics = await league_analytics(scored_league, 1)

        assert analytics["genreAnalysis"][0]["votes"] == 8

    @pytest.mark.asyncio
    async def test_empty_league(self, store):
        analytics = await league_analytics(store, 42)

        assert analytics == {"genreAnalysis": [], "artistAnalysis": [], "popularityAnalysis": []}


class TestOverview:

    @pytest.mark.asyncio
    async def test_totals_and_league_stats(self, scored_league):
        overview = await overview_stats(scored_league)

        assert overview["totalSubmissions"] == 3
        assert overview["totalVotes"] == 4
        assert overview["totalRounds"] == 1
        assert overview["totalCompetitors"] == 3
        league = overview["leagues"][0]
        assert league["name"] == "League 1"
        assert league["stats"] == {"rounds": 1, "competitors": 3, "submissions": 3, "votes": 4}
        assert overview["recentRounds"][0]["leagueName"] == "League 1"

    @pytest.mark.asyncio
    async def test_recent_rounds_across_leagues(self, store):
        await insert_league(store, league_id=1, rounds=[
            {"_id": f"L1-{day}", "leagueId": 1, "name": f"Round {day}", "created": created(day)} for day in (1, 3, 5)
        ])
        await insert_league(store, league_id=2, rounds=[
            {"_id": f"L2-{day}", "leagueId": 2, "name": f"Round {day}", "created": created(day)} for day in (2, 4, 6)
        ])

        overview = await overview_stats(store)

        assert [round_doc["_id"] for round_doc in overview["recentRounds"]] == ["L2-6", "L1-5", "L2-4", "L1-3", "L2-2"]


class TestCompetitorStats:

    @pytest.mark.asyncio
    async def test_received_and_given(self, scored_league):
        stats = await competitor_stats(scored_league, 1, "alice")

        assert stats["competitor"] == {"_id": "alice", "name": "Alice"}
        assert stats["submissions"] == 1
        assert stats["votesReceived"] == 2
        assert stats["pointsReceived"] == 8
        assert stats["votesGiven"] == 2
        assert stats["pointsGiven"] == 6
        assert stats["avgPointsPerSubmission"] == 8.0

    @pytest.mark.asyncio
    async def test_unknown_competitor(self, scored_league):
        assert await competitor_stats(scored_league, 1, "nobody") is None


class TestRoundLeaderboard:

    @pytest.mark.asyncio
    async def test_ranked_by_points(self, scored_league):
        result = await round_leaderboard(scored_league, "R1")

        rows = result["leaderboard"]
        assert result["round"]["name"] == "Opening Round"
        assert [(row["rank"], row["spotifyUri"], row["totalPoints"]) for row in rows] == [
            (1, URI_ROCK, 8),
            (2, URI_POP, 4),
            (3, URI_NO_METADATA, 2),
        ]
        assert rows[0]["submitterName"] == "Alice"
        assert rows[1]["artist"] == "Pop Star, Guest"
        assert rows[2]["title"] == "Lost Song"
        assert rows[2]["primaryGenre"] is None

    @pytest.mark.asyncio
    async def test_unknown_round(self, store):
        assert await round_leaderboard(store, "missing") is None
