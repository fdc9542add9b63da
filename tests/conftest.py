"""Shared pytest fixtures and configuration."""

from __future__ import annotations

import os
import threading
from datetime import datetime, timedelta, timezone

import pytest

# Set required environment variables before any imports
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("FLASK_CONFIG", "testing")

from makepicks import create_app, db  # noqa: E402
from makepicks.models import Pick, Round, Season, User  # noqa: E402

# 10:30 in New York (EDT, UTC-4)
NOW = datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc)


class FakeTransport:
    """Records messages instead of talking to an SMTP server."""

    is_configured = True

    def __init__(self):
        self.sent = []
        self.attempts = []
        self.errors = {}
        self._lock = threading.Lock()

    def fail(self, to_email, *errors):
        """Queue errors raised on successive sends to `to_email`."""
        self.errors.setdefault(to_email, []).extend(errors)

    def send(self, from_email, to_email, mime_message):
        with self._lock:
            self.attempts.append(to_email)
            queued = self.errors.get(to_email)
            if queued:
                raise queued.pop(0)
            self.sent.append(mime_message)

    def verify(self):
        return True

    @property
    def recipients(self):
        return [m["To"] for m in self.sent]

    def bodies_for(self, to_email):
        return [
            m.get_payload()[0].get_payload(decode=True).decode()
            for m in self.sent
            if m["To"] == to_email
        ]


class Factory:
    """Small helpers for building seasons, rounds, users and picks."""

    def __init__(self):
        self._counter = 0

    def user(self, name=None, email=None, is_admin=False, is_active=True):
        self._counter += 1
        name = name or f"Player {self._counter}"
        user = User(
            name=name,
            email=email or f"player{self._counter}@example.com",
            is_admin=is_admin,
            is_active=is_active,
        )
        db.session.add(user)
        db.session.flush()
        return user

    def season(self, name="2026 Season", participants=(), **kwargs):
        season = Season(name=name, year_start=2026, year_end=2027, **kwargs)
        db.session.add(season)
        db.session.flush()
        for user in participants:
            season.add_participant(user)
        db.session.flush()
        return season

    def round(self, season, sport_name="Golf", lock_time=None, status="active", **kwargs):
        round_ = Round(
            season_id=season.id,
            sport_name=sport_name,
            lock_time=lock_time or NOW + timedelta(days=2),
            status=status,
            **kwargs,
        )
        db.session.add(round_)
        db.session.flush()
        return round_

    def pick(self, user, round_, *values):
        pick = Pick.submit(user.id, round_.id, list(values or ("Someone",)))
        db.session.flush()
        return pick


@pytest.fixture
def app():
    """Application with an in-memory database and a fake mail transport."""
    app = create_app("testing")
    app.extensions["email_transport"] = FakeTransport()

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def transport(app):
    return app.extensions["email_transport"]


@pytest.fixture
def make(app):
    return Factory()


@pytest.fixture
def now():
    return NOW
