"""Admin round transitions and result recording"""

import logging

from makepicks import db
from makepicks.models import Pick, Round, RoundResult, ScoreDetail
from makepicks.models.reminder_log import REMINDER_COMPLETED, REMINDER_LOCKED
from makepicks.models.score_detail import LAST_PLACE, NO_PICK_PLACE
from makepicks.utils.cache_utils import invalidate_leaderboard_cache
from makepicks.utils.results import ErrorKind, ServiceError, ServiceResult

logger = logging.getLogger(__name__)

MAX_PLACEMENTS = 5


def _normalize(value):
    return str(value or "").strip().lower()


def place_for_pick(values, placements):
    """
    First finishing place (1-5) matched by any pick value, compared
    case-insensitively; LAST_PLACE when nothing matches.

    `placements` is indexed by finishing place, so a blank entry leaves
    its place vacant rather than moving later finishers up.
    """
    picked = {_normalize(v) for v in values if _normalize(v)}
    for place, result in enumerate(placements, start=1):
        if _normalize(result) and _normalize(result) in picked:
            return place
    return LAST_PLACE


class RoundService:
    def __init__(self, notifications=None):
        self._notifications = notifications

    @property
    def notifications(self):
        if self._notifications is None:
            from makepicks.services.notification_service import (
                build_notification_service,
            )

            self._notifications = build_notification_service()
        return self._notifications

    def _get_round(self, round_id):
        round_ = db.session.get(Round, round_id)
        if round_ is None or round_.is_deleted:
            raise ServiceError(ErrorKind.NOT_FOUND, f"Round {round_id} not found")
        return round_

    def _transition(self, round_id, allowed_from, target):
        try:
            round_ = self._get_round(round_id)
            if round_.status not in allowed_from:
                raise ServiceError(
                    ErrorKind.INVALID_STATE,
                    f"Round {round_id} is {round_.status}; expected "
                    f"{' or '.join(allowed_from)}",
                )
            round_.status = target
            db.session.commit()
        except ServiceError as e:
            db.session.rollback()
            return None, e.to_result()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error moving round {round_id} to {target}: {e}", exc_info=True)
            return None, ServiceResult.failure(
                ErrorKind.INTERNAL, f"Failed to update round {round_id}"
            )

        logger.info(f"Round {round_id} moved to {target}")
        return round_, None

    def activate_round(self, round_id):
        round_, error = self._transition(round_id, (Round.STATUS_DRAFT,), Round.STATUS_ACTIVE)
        return error or ServiceResult.success(f"Round {round_id} activated")

    def lock_round(self, round_id, now=None):
        """Lock an active round early and notify participants"""
        round_, error = self._transition(round_id, (Round.STATUS_ACTIVE,), Round.STATUS_LOCKED)
        if error:
            return error

        try:
            outcome = self.notifications.manual_resend(round_, REMINDER_LOCKED, now=now)
        except Exception as e:
            db.session.rollback()
            logger.error(
                f"Round {round_id} locked but notification failed: {e}", exc_info=True
            )
            return ServiceResult.success(
                f"Round {round_id} locked; notification failed and will be retried"
            )

        invalidate_leaderboard_cache(round_.season_id)
        return ServiceResult.success(
            f"Round {round_id} locked",
            value={"notified": outcome.recipient_count},
        )

    def unlock_round(self, round_id):
        """Reopen a completed round for result corrections"""
        round_, error = self._transition(
            round_id, (Round.STATUS_COMPLETED,), Round.STATUS_LOCKED
        )
        if error:
            return error
        invalidate_leaderboard_cache(round_.season_id)
        return ServiceResult.success(f"Round {round_id} unlocked")

    def complete_round(self, round_id, placements):
        """
        Record the official top finishers and score every participant.

        Each participant gets one ScoreDetail: the best place matched by
        their pick, LAST_PLACE for a pick that matched nothing, or
        NO_PICK_PLACE when they never picked. Earlier details for the
        round are replaced.

        Entry N of `placements` is the finisher in place N; blank entries
        leave that place empty. Participants are sent their results once
        the round is saved.
        """
        placements = list(placements or [])
        ranked = [
            (place, str(value).strip())
            for place, value in enumerate(placements, start=1)
            if _normalize(value)
        ]
        if not ranked or len(placements) > MAX_PLACEMENTS:
            return ServiceResult.failure(
                ErrorKind.VALIDATION,
                f"Provide between 1 and {MAX_PLACEMENTS} placements",
            )

        try:
            round_ = self._get_round(round_id)
            if round_.status not in (Round.STATUS_ACTIVE, Round.STATUS_LOCKED):
                raise ServiceError(
                    ErrorKind.INVALID_STATE,
                    f"Round {round_id} is {round_.status}; only active or locked "
                    f"rounds can be completed",
                )

            RoundResult.query.filter_by(round_id=round_.id).delete(synchronize_session=False)
            ScoreDetail.query.filter_by(round_id=round_.id).delete(synchronize_session=False)

            for place, value in ranked:
                db.session.add(RoundResult(round_id=round_.id, place=place, result_value=value))

            picks = {p.user_id: p for p in Pick.query.filter_by(round_id=round_.id).all()}
            tally = {}
            for user in round_.season.get_participants():
                pick = picks.get(user.id)
                if pick is None or not pick.has_value:
                    place = NO_PICK_PLACE
                else:
                    place = place_for_pick(pick.values, placements)
                db.session.add(
                    ScoreDetail(user_id=user.id, round_id=round_.id, place=place, count=1)
                )
                tally[place] = tally.get(place, 0) + 1

            round_.status = Round.STATUS_COMPLETED
            db.session.commit()

        except ServiceError as e:
            db.session.rollback()
            return e.to_result()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error completing round {round_id}: {e}", exc_info=True)
            return ServiceResult.failure(ErrorKind.INTERNAL, f"Failed to complete round {round_id}")

        invalidate_leaderboard_cache(round_.season_id)
        logger.info(f"Round {round_id} completed; places {sorted(tally.items())}")

        notified = 0
        try:
            outcome = self.notifications.send_if_not_sent(round_, REMINDER_COMPLETED)
            notified = outcome.recipient_count
        except Exception as e:
            db.session.rollback()
            logger.error(
                f"Round {round_id} completed but results notification failed: {e}",
                exc_info=True,
            )

        return ServiceResult.success(
            f"Round {round_id} completed", value={"places": tally, "notified": notified}
        )
