"""Tests for the JSON API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from makepicks import db
from makepicks.models import ReminderLog, Round, ScoreDetail


def _score(user, round_, place):
    db.session.add(ScoreDetail(user_id=user.id, round_id=round_.id, place=place, count=1))


class TestLeaderboardEndpoints:
    def test_leaderboard(self, client, make):
        ann, bob = make.user("Ann"), make.user("Bob")
        season = make.season(participants=[ann, bob])
        round_ = make.round(season, status="completed")
        _score(ann, round_, 1)
        _score(bob, round_, 2)
        db.session.commit()

        response = client.get(f"/api/leaderboard/season/{season.id}")

        assert response.status_code == 200
        data = response.get_json()
        assert data["season"]["id"] == season.id
        assert [(e["userName"], e["totalPoints"], e["rank"]) for e in data["leaderboard"]] == [
            ("Ann", 6, 1),
            ("Bob", 5, 2),
        ]

    def test_leaderboard_refreshes_after_points_change(self, client, make):
        ann = make.user("Ann")
        season = make.season(participants=[ann])
        round_ = make.round(season, status="completed")
        _score(ann, round_, 1)
        db.session.commit()
        client.get(f"/api/leaderboard/season/{season.id}")

        response = client.put("/api/admin/settings/points", json={"1": 10})
        assert response.status_code == 200

        data = client.get(f"/api/leaderboard/season/{season.id}").get_json()
        assert data["leaderboard"][0]["totalPoints"] == 10

    def test_unknown_season_is_404(self, client):
        response = client.get("/api/leaderboard/season/999")

        assert response.status_code == 404
        assert "error" in response.get_json()

    def test_graph(self, client, make):
        ann = make.user("Ann")
        season = make.season(participants=[ann])
        round_ = make.round(season, "Golf", status="completed")
        _score(ann, round_, 1)
        db.session.commit()

        data = client.get(f"/api/leaderboard/season/{season.id}/graph").get_json()

        assert data[0]["userName"] == "Ann"
        assert [p["points"] for p in data[0]["points"]] == [0, 6]


class TestSeasonEndpoints:
    def test_end_season_with_open_rounds_is_409(self, client, make):
        season = make.season(participants=[make.user()])
        make.round(season, "Tennis", status="active")
        db.session.commit()

        response = client.post(f"/api/admin/seasons/{season.id}/end")

        assert response.status_code == 409
        body = response.get_json()
        assert body["kind"] == "invalid_state"
        assert "Tennis" in body["error"]

    def test_end_season_and_list_winners(self, client, make):
        ann = make.user("Ann")
        season = make.season(participants=[ann])
        round_ = make.round(season, status="completed")
        _score(ann, round_, 1)
        db.session.commit()

        response = client.post(f"/api/admin/seasons/{season.id}/end")
        assert response.status_code == 200

        winners = client.get(f"/api/seasons/{season.id}/winners").get_json()
        assert winners == [{"place": 1, "user_id": ann.id, "name": "Ann", "total_points": 6}]

    def test_admin_routes_require_login(self, app, client, make):
        app.config["LOGIN_DISABLED"] = False
        season = make.season()
        db.session.commit()

        response = client.post(f"/api/admin/seasons/{season.id}/end")

        assert response.status_code == 401


class TestRoundEndpoints:
    def test_complete_round(self, client, make):
        ann = make.user("Ann")
        season = make.season(participants=[ann])
        round_ = make.round(season, status="locked")
        make.pick(ann, round_, "Tiger")
        db.session.commit()

        response = client.post(
            f"/api/admin/rounds/{round_.id}/complete", json={"placements": ["Tiger"]}
        )

        assert response.status_code == 200
        assert response.get_json()["result"]["places"] == {"1": 1}
        assert response.get_json()["result"]["notified"] == 1

    def test_complete_round_needs_a_list(self, client, make):
        round_ = make.round(make.season(), status="locked")
        db.session.commit()

        response = client.post(
            f"/api/admin/rounds/{round_.id}/complete", json={"placements": "Tiger"}
        )

        assert response.status_code == 400

    def test_resend_locked_notification(self, client, make, transport):
        users = [make.user() for _ in range(2)]
        round_ = make.round(make.season(participants=users), status="locked")
        db.session.commit()

        first = client.post(f"/api/admin/rounds/{round_.id}/notifications/locked/resend")
        second = client.post(f"/api/admin/rounds/{round_.id}/notifications/locked/resend")

        assert first.status_code == second.status_code == 200
        assert second.get_json()["result"]["recipients"] == 2
        assert ReminderLog.query.filter_by(round_id=round_.id).count() == 1
        assert len(transport.sent) == 4

    def test_resend_reminder_after_lock_is_409(self, client, make, transport):
        round_ = make.round(make.season(participants=[make.user()]), status="locked")
        db.session.commit()

        response = client.post(f"/api/admin/rounds/{round_.id}/notifications/final/resend")

        assert response.status_code == 409
        assert response.get_json()["kind"] == "invalid_state"
        assert transport.sent == []

    def test_resend_results(self, client, make, transport):
        round_ = make.round(make.season(participants=[make.user()]), status="completed")
        db.session.commit()

        response = client.post(f"/api/admin/rounds/{round_.id}/notifications/completed/resend")

        assert response.status_code == 200
        assert response.get_json()["result"]["recipients"] == 1
        assert len(transport.sent) == 1

    def test_resend_rejects_unknown_type(self, client, make):
        round_ = make.round(make.season())
        db.session.commit()

        response = client.post(f"/api/admin/rounds/{round_.id}/notifications/weekly/resend")

        assert response.status_code == 400

    def test_send_reminder_only_for_active_rounds(self, client, make):
        round_ = make.round(make.season(participants=[make.user()]), status="locked")
        db.session.commit()

        response = client.post(f"/api/admin/rounds/{round_.id}/send-reminder")

        assert response.status_code == 409

    def test_auto_lock_expired(self, client, make):
        round_ = make.round(
            make.season(participants=[make.user()]),
            lock_time=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
        db.session.commit()

        response = client.post("/api/admin/rounds/auto-lock-expired")

        assert response.status_code == 200
        assert response.get_json()["result"]["locked"] == 1
        db.session.expire_all()
        assert db.session.get(Round, round_.id).status == "locked"

    def test_scheduler_status(self, client):
        response = client.get("/api/admin/scheduler/status")

        assert response.status_code == 200
        body = response.get_json()
        assert body["tick_in_progress"] is False
        assert "stats" in body


class TestPointsEndpoint:
    def test_rejects_out_of_range(self, client):
        response = client.put("/api/admin/settings/points", json={"1": 50})

        assert response.status_code == 400
        assert response.get_json()["kind"] == "validation"

    def test_rejects_non_object(self, client):
        response = client.put("/api/admin/settings/points", json=[1, 2])

        assert response.status_code == 400
