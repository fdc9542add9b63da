from makepicks import db  # noqa: F401 - imported for model imports

from .magic_link import MagicLink
from .pick import Pick, PickItem
from .reminder_log import ReminderLog
from .round import Round, RoundResult
from .score_detail import ScoreDetail
from .scoring_rule import ScoringRule
from .season import Season, SeasonParticipant
from .season_winner import SeasonWinner
from .setting import Setting
from .user import User

__all__ = [
    "User",
    "Season",
    "SeasonParticipant",
    "Round",
    "RoundResult",
    "Pick",
    "PickItem",
    "ScoreDetail",
    "ScoringRule",
    "SeasonWinner",
    "ReminderLog",
    "MagicLink",
    "Setting",
]
