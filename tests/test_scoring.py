"""Tests for point aggregation, ranking and leaderboard building."""

from __future__ import annotations

from makepicks import db
from makepicks.models import ScoreDetail
from makepicks.services.scoring_service import (
    ScoringService,
    competition_ranks,
    round_points,
)


def _detail(user, round_, place, count=1):
    db.session.add(
        ScoreDetail(user_id=user.id, round_id=round_.id, place=place, count=count)
    )


# ----------------------------------------------------------------
# round_points / competition_ranks
# ----------------------------------------------------------------


class TestRoundPoints:
    def test_sums_count_times_points(self):
        details = [{"place": 1, "count": 2}, {"place": 3, "count": 1}]
        assert round_points(details, {1: 6, 3: 4}) == 16

    def test_missing_rule_scores_zero(self):
        assert round_points([{"place": 4, "count": 3}], {1: 6}) == 0

    def test_negative_rules_keep_sign(self):
        first = round_points([{"place": 1, "count": 1}], {1: 6})
        second = round_points([{"place": 0, "count": 1}], {0: -2})
        assert first + second == 4

    def test_no_details_is_zero(self):
        assert round_points([], {1: 6}) == 0


class TestCompetitionRanks:
    def test_ties_share_rank_and_skip(self):
        assert competition_ranks([10, 10, 8, 8, 5]) == [1, 1, 3, 3, 5]

    def test_all_distinct(self):
        assert competition_ranks([9, 7, 3]) == [1, 2, 3]

    def test_all_tied(self):
        assert competition_ranks([4, 4, 4]) == [1, 1, 1]

    def test_empty(self):
        assert competition_ranks([]) == []


# ----------------------------------------------------------------
# Leaderboard
# ----------------------------------------------------------------


class TestLeaderboard:
    def test_scenario_b_total_uses_negative_no_pick_points(self, make):
        user = make.user("Alice")
        season = make.season(participants=[user])
        r1 = make.round(season, "Golf", status="completed")
        r2 = make.round(season, "Tennis", status="completed")
        _detail(user, r1, place=1)
        _detail(user, r2, place=0)
        db.session.commit()

        board = ScoringService().leaderboard(season, rules={1: 6, 0: -2})

        assert board["leaderboard"][0]["totalPoints"] == 4

    def test_only_completed_rounds_count(self, make):
        user = make.user("Alice")
        season = make.season(participants=[user])
        done = make.round(season, "Golf", status="completed")
        locked = make.round(season, "Tennis", status="locked")
        _detail(user, done, place=1)
        _detail(user, locked, place=1)
        db.session.commit()

        board = ScoringService().leaderboard(season, rules={1: 6})
        entry = board["leaderboard"][0]

        assert entry["totalPoints"] == 6
        assert entry["scores"][locked.id] is None
        assert entry["scores"][done.id]["total_points"] == 6

    def test_tied_totals_share_rank(self, make):
        users = [make.user(name) for name in ("Ann", "Bob", "Cat", "Dan", "Eve")]
        season = make.season(participants=users)
        round_ = make.round(season, status="completed")
        for user, place in zip(users, (1, 1, 2, 2, 3)):
            _detail(user, round_, place=place)
        db.session.commit()

        board = ScoringService().leaderboard(season, rules={1: 10, 2: 8, 3: 5})

        totals = [e["totalPoints"] for e in board["leaderboard"]]
        ranks = [e["rank"] for e in board["leaderboard"]]
        assert totals == [10, 10, 8, 8, 5]
        assert ranks == [1, 1, 3, 3, 5]

    def test_ties_are_ordered_by_name(self, make):
        zed = make.user("Zed")
        amy = make.user("Amy")
        season = make.season(participants=[zed, amy])
        db.session.commit()

        board = ScoringService().leaderboard(season, rules={})

        assert [e["userName"] for e in board["leaderboard"]] == ["Amy", "Zed"]

    def test_deleted_rounds_are_excluded(self, make, now):
        user = make.user()
        season = make.season(participants=[user])
        kept = make.round(season, "Golf", status="completed")
        gone = make.round(season, "Darts", status="completed", deleted_at=now)
        _detail(user, kept, place=1)
        _detail(user, gone, place=1)
        db.session.commit()

        board = ScoringService().leaderboard(season, rules={1: 6})

        assert [r["id"] for r in board["rounds"]] == [kept.id]
        assert board["leaderboard"][0]["totalPoints"] == 6

    def test_picks_are_included(self, make):
        user = make.user()
        season = make.season(participants=[user])
        round_ = make.round(season)
        make.pick(user, round_, "Tiger", "Rory")
        db.session.commit()

        board = ScoringService().leaderboard(season, rules={})
        items = board["leaderboard"][0]["picks"][round_.id]["pickItems"]

        assert [i["pickValue"] for i in items] == ["Tiger", "Rory"]


class TestFinalStandingsAndGraph:
    def test_final_standings_shape(self, make):
        a, b = make.user("Ann"), make.user("Bob")
        season = make.season(participants=[a, b])
        round_ = make.round(season, status="completed")
        _detail(a, round_, place=2)
        _detail(b, round_, place=1)
        db.session.commit()

        standings = ScoringService().final_standings(season, rules={1: 6, 2: 5})

        assert standings == [
            {"user_id": b.id, "name": "Bob", "total_points": 6, "rank": 1},
            {"user_id": a.id, "name": "Ann", "total_points": 5, "rank": 2},
        ]

    def test_cumulative_graph_starts_at_zero(self, make, now):
        from datetime import timedelta

        user = make.user("Ann")
        season = make.season(participants=[user])
        r1 = make.round(season, "Golf", lock_time=now, status="completed")
        r2 = make.round(season, "Tennis", lock_time=now + timedelta(days=1), status="completed")
        make.round(season, "Darts", lock_time=now + timedelta(days=2), status="active")
        _detail(user, r1, place=1)
        _detail(user, r2, place=3)
        db.session.commit()

        graph = ScoringService().cumulative_graph(season, rules={1: 6, 3: 4})

        assert graph[0]["points"] == [
            {"roundId": 0, "roundName": "Start", "points": 0},
            {"roundId": r1.id, "roundName": "Golf", "points": 6},
            {"roundId": r2.id, "roundName": "Tennis", "points": 10},
        ]

    def test_user_total_points(self, make):
        user = make.user()
        season = make.season(participants=[user])
        r1 = make.round(season, status="completed")
        r2 = make.round(season, status="completed")
        _detail(user, r1, place=1)
        _detail(user, r2, place=1)
        _detail(user, r2, place=6, count=2)
        db.session.commit()

        total = ScoringService().user_total_points(user.id, season, rules={1: 6, 6: 1})

        assert total == 14
