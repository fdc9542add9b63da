"""
Season lifecycle: ending (with a point-settings snapshot), reopening
and choosing the default season.
"""

import logging

from makepicks import db
from makepicks.models import Round, ScoringRule, Season, SeasonWinner
from makepicks.models.score_detail import PLACES
from makepicks.services.scoring_service import ScoringService
from makepicks.services.settings_service import SettingsService
from makepicks.utils.cache_utils import invalidate_leaderboard_cache
from makepicks.utils.results import ErrorKind, ServiceError, ServiceResult
from makepicks.utils.timezone_utils import get_utc_time

logger = logging.getLogger(__name__)

WINNER_PLACES = 5


class SeasonService:
    def __init__(self, settings=None, scoring=None):
        self.settings = settings or SettingsService()
        self.scoring = scoring or ScoringService(self.settings)

    def _get_season(self, season_id):
        season = db.session.get(Season, season_id)
        if season is None or season.is_deleted:
            raise ServiceError(ErrorKind.NOT_FOUND, f"Season {season_id} not found")
        return season

    def snapshot_rules(self, season):
        """
        Copy the live point values onto the season, one row per place.

        Existing snapshot rows are replaced, so running this twice leaves
        the same rows behind. Does not commit.
        """
        live = self.settings.get_points_settings()
        ScoringRule.query.filter_by(season_id=season.id).delete(synchronize_session=False)
        snapshot = {place: int(live.get(place, 0)) for place in PLACES}
        for place, points in snapshot.items():
            db.session.add(ScoringRule(season_id=season.id, place=place, points=points))
        db.session.flush()
        return snapshot

    def end_season(self, season_id, now=None):
        """Validate, snapshot points, record winners and mark the season ended"""
        now = now or get_utc_time()
        try:
            season = self._get_season(season_id)
            if season.is_ended:
                raise ServiceError(
                    ErrorKind.INVALID_STATE, f"Season '{season.name}' has already ended"
                )

            incomplete = [
                r for r in season.get_live_rounds() if r.status != Round.STATUS_COMPLETED
            ]
            if incomplete:
                names = ", ".join(r.sport_name for r in incomplete)
                raise ServiceError(
                    ErrorKind.INVALID_STATE,
                    f"Cannot end season: {len(incomplete)} round(s) not completed ({names})",
                )

            snapshot = self.snapshot_rules(season)
            standings = self.scoring.final_standings(season, rules=snapshot)

            SeasonWinner.query.filter_by(season_id=season.id).delete(
                synchronize_session=False
            )
            winners = []
            for position, entry in enumerate(standings):
                if position >= WINNER_PLACES:
                    break
                winner = SeasonWinner(
                    season_id=season.id,
                    user_id=entry["user_id"],
                    place=entry["rank"],
                    total_points=entry["total_points"],
                )
                db.session.add(winner)
                winners.append(entry)

            season.ended_at = now
            db.session.commit()

        except ServiceError as e:
            db.session.rollback()
            logger.warning(f"End season {season_id} rejected: {e.message}")
            return e.to_result()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error ending season {season_id}: {e}", exc_info=True)
            return ServiceResult.failure(ErrorKind.INTERNAL, "Failed to end season")

        self.settings.clear_cache()
        invalidate_leaderboard_cache(season_id)
        logger.info(
            f"Season {season_id} ended with {len(winners)} winner(s); points snapshot {snapshot}"
        )
        return ServiceResult.success(
            f"Season '{season.name}' ended", value={"winners": winners}
        )

    def reopen_season(self, season_id):
        """Clear the end marker and winners; the points snapshot is kept"""
        try:
            season = self._get_season(season_id)
            if not season.is_ended:
                raise ServiceError(
                    ErrorKind.INVALID_STATE, f"Season '{season.name}' has not ended"
                )

            season.ended_at = None
            SeasonWinner.query.filter_by(season_id=season.id).delete(
                synchronize_session=False
            )
            db.session.commit()

        except ServiceError as e:
            db.session.rollback()
            logger.warning(f"Reopen season {season_id} rejected: {e.message}")
            return e.to_result()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error reopening season {season_id}: {e}", exc_info=True)
            return ServiceResult.failure(ErrorKind.INTERNAL, "Failed to reopen season")

        self.settings.clear_cache()
        invalidate_leaderboard_cache(season_id)
        logger.info(f"Season {season_id} reopened")
        return ServiceResult.success(f"Season '{season.name}' reopened")

    def set_default_season(self, season_id):
        """Make one active season the default, clearing the flag elsewhere"""
        try:
            season = self._get_season(season_id)
            if not season.is_active or season.is_ended:
                raise ServiceError(
                    ErrorKind.INVALID_STATE,
                    "Only active seasons can be set as the default",
                )

            Season.query.filter(Season.id != season.id).update(
                {"is_default": False}, synchronize_session=False
            )
            season.is_default = True
            db.session.commit()

        except ServiceError as e:
            db.session.rollback()
            return e.to_result()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error setting default season {season_id}: {e}", exc_info=True)
            return ServiceResult.failure(ErrorKind.INTERNAL, "Failed to set default season")

        invalidate_leaderboard_cache()
        return ServiceResult.success(f"Season '{season.name}' is now the default")
