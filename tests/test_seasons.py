"""Tests for ending, reopening and defaulting seasons."""

from __future__ import annotations

import pytest

from makepicks import db
from makepicks.models import ScoreDetail, ScoringRule, Season, SeasonWinner
from makepicks.models.score_detail import PLACES
from makepicks.services.scoring_service import ScoringService
from makepicks.services.season_service import SeasonService
from makepicks.services.settings_service import SettingsService
from makepicks.utils.results import ErrorKind


def _score(user, round_, place):
    db.session.add(ScoreDetail(user_id=user.id, round_id=round_.id, place=place, count=1))


@pytest.fixture
def seasons(app):
    return SeasonService()


def _completed_season(make, placements):
    """Season with one completed round; `placements` maps name -> place"""
    users = {name: make.user(name) for name in placements}
    season = make.season(participants=users.values())
    round_ = make.round(season, status="completed")
    for name, place in placements.items():
        _score(users[name], round_, place)
    db.session.commit()
    return season, users


# ----------------------------------------------------------------
# end_season
# ----------------------------------------------------------------


class TestEndSeason:
    def test_unknown_season(self, seasons):
        result = seasons.end_season(999)

        assert not result.ok
        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_incomplete_rounds_block_ending(self, make, seasons):
        season = make.season(participants=[make.user()])
        make.round(season, "Golf", status="completed")
        make.round(season, "Tennis", status="locked")
        make.round(season, "Darts", status="active")
        db.session.commit()

        result = seasons.end_season(season.id)

        assert not result.ok
        assert result.error_kind == ErrorKind.INVALID_STATE
        assert "Tennis" in result.message and "Darts" in result.message
        assert db.session.get(Season, season.id).ended_at is None
        assert ScoringRule.query.filter_by(season_id=season.id).count() == 0

    def test_deleted_rounds_do_not_block(self, make, seasons, now):
        season = make.season(participants=[make.user()])
        make.round(season, status="completed")
        make.round(season, "Darts", status="active", deleted_at=now)
        db.session.commit()

        assert seasons.end_season(season.id).ok

    def test_already_ended(self, make, seasons, now):
        season = make.season(ended_at=now)
        db.session.commit()

        result = seasons.end_season(season.id)

        assert result.error_kind == ErrorKind.INVALID_STATE

    def test_snapshot_covers_every_place(self, make, seasons, now):
        season, _ = _completed_season(make, {"Ann": 1})

        seasons.end_season(season.id, now=now)

        rules = {r.place: r.points for r in ScoringRule.snapshot_for(season.id)}
        assert set(rules) == set(PLACES)
        assert rules[1] == 6
        assert db.session.get(Season, season.id).is_ended

    def test_winners_share_places_on_ties(self, make, seasons, now):
        season, users = _completed_season(
            make, {"Ann": 1, "Bob": 1, "Cat": 2, "Dan": 2, "Eve": 3, "Fay": 4}
        )

        result = seasons.end_season(season.id, now=now)

        winners = SeasonWinner.for_season(season.id)
        assert [(w.user.name, w.place) for w in winners] == [
            ("Ann", 1),
            ("Bob", 1),
            ("Cat", 3),
            ("Dan", 3),
            ("Eve", 5),
        ]
        assert len(result.value["winners"]) == 5

    def test_historical_leaderboard_ignores_later_point_changes(self, make, seasons, now):
        season, _ = _completed_season(make, {"Ann": 1})
        seasons.end_season(season.id, now=now)

        SettingsService().update_points_settings({1: 20})

        board = ScoringService().leaderboard(db.session.get(Season, season.id))
        assert board["leaderboard"][0]["totalPoints"] == 6

    def test_live_season_follows_point_changes(self, make):
        season, _ = _completed_season(make, {"Ann": 1})

        SettingsService().update_points_settings({1: 20})

        board = ScoringService().leaderboard(season)
        assert board["leaderboard"][0]["totalPoints"] == 20


# ----------------------------------------------------------------
# reopen / default
# ----------------------------------------------------------------


class TestReopenSeason:
    def test_reopen_keeps_snapshot_and_drops_winners(self, make, seasons, now):
        season, _ = _completed_season(make, {"Ann": 1})
        seasons.end_season(season.id, now=now)

        result = seasons.reopen_season(season.id)

        assert result.ok
        assert db.session.get(Season, season.id).ended_at is None
        assert SeasonWinner.query.filter_by(season_id=season.id).count() == 0
        assert ScoringRule.query.filter_by(season_id=season.id).count() == len(PLACES)

    def test_reopen_then_end_again_replaces_snapshot(self, make, seasons, now):
        season, _ = _completed_season(make, {"Ann": 1})
        seasons.end_season(season.id, now=now)
        seasons.reopen_season(season.id)
        SettingsService().update_points_settings({1: 9})

        seasons.end_season(season.id, now=now)

        rules = {r.place: r.points for r in ScoringRule.snapshot_for(season.id)}
        assert len(rules) == len(PLACES)
        assert rules[1] == 9
        assert SeasonWinner.for_season(season.id)[0].total_points == 9

    def test_reopen_requires_ended(self, make, seasons):
        season = make.season()
        db.session.commit()

        assert seasons.reopen_season(season.id).error_kind == ErrorKind.INVALID_STATE


class TestSetDefaultSeason:
    def test_moves_the_flag(self, make, seasons):
        old = make.season("Old", is_default=True)
        new = make.season("New")
        db.session.commit()

        assert seasons.set_default_season(new.id).ok

        assert Season.get_default_season().id == new.id
        assert db.session.get(Season, old.id).is_default is False

    def test_ended_season_cannot_be_default(self, make, seasons, now):
        season = make.season(ended_at=now)
        db.session.commit()

        assert seasons.set_default_season(season.id).error_kind == ErrorKind.INVALID_STATE
