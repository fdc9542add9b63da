"""Per-user pick links included in reminder emails"""

import logging
import secrets

from flask import current_app

from makepicks import db
from makepicks.models import MagicLink
from makepicks.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class MagicLinkService:
    """Reuses or mints pick tokens that expire when the round locks"""

    def __init__(self, app_url=None):
        self.app_url = (app_url or current_app.config.get("APP_URL", "")).rstrip("/")

    def build_pick_url(self, token):
        return f"{self.app_url}/pick/{token}"

    def ensure_link(self, user, round_, now=None):
        """
        Return a valid link for (user, round).

        An unexpired token is reused. An expired one is replaced in place,
        so there is never more than one row per (user, round).
        """
        now = ensure_utc(now) if now else get_utc_time()
        link = MagicLink.query.filter_by(user_id=user.id, round_id=round_.id).first()

        if link is not None and link.is_valid(now):
            # Keep the token but follow lock time edits
            link.expires_at = round_.lock_time_utc
            return link

        token = secrets.token_hex(TOKEN_BYTES)
        if link is None:
            link = MagicLink(user_id=user.id, round_id=round_.id)
            db.session.add(link)
            logger.debug(f"Minted pick link for user {user.id} round {round_.id}")
        else:
            logger.debug(f"Refreshed expired pick link for user {user.id} round {round_.id}")

        link.token = token
        link.expires_at = round_.lock_time_utc
        link.created_at = now
        return link

    def ensure_links(self, users, round_, now=None):
        """Map user id -> pick URL; caller commits"""
        urls = {}
        for user in users:
            link = self.ensure_link(user, round_, now=now)
            urls[user.id] = self.build_pick_url(link.token)
        db.session.flush()
        return urls
