"""
Scoring Engine for seasonal pick competitions

Round points are an integer sum of (count x points) over places 0..6.
Season standings use competition ranking: tied totals share a rank and
the next distinct total takes its 1-based position (10,10,8,8,5 ranks
as 1,1,3,3,5).
"""

import logging
from collections import defaultdict

from makepicks import db
from makepicks.models import Pick, Round, ScoreDetail
from makepicks.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


def round_points(score_details, rules):
    """Points for one round; places with no rule score 0"""
    total = 0
    for detail in score_details:
        place = detail["place"] if isinstance(detail, dict) else detail.place
        count = detail["count"] if isinstance(detail, dict) else detail.count
        total += int(count) * int(rules.get(place, 0))
    return total


def competition_ranks(totals):
    """Ranks for totals already sorted in descending order"""
    ranks = []
    current_rank = 1
    for index, total in enumerate(totals):
        if index > 0 and totals[index - 1] != total:
            current_rank = index + 1
        ranks.append(current_rank)
    return ranks


class ScoringService:
    """Season leaderboards, standings and graphs"""

    def __init__(self, settings=None):
        self.settings = settings or SettingsService()

    def rules_for_season(self, season):
        return self.settings.get_points_for_season(season)

    def _load_season(self, season):
        """Rounds, participants and per-(user, round) score details"""
        rounds = season.get_live_rounds()
        participants = season.get_participants()
        round_ids = [r.id for r in rounds]

        details = defaultdict(list)
        picks = {}
        if round_ids:
            for detail in ScoreDetail.query.filter(ScoreDetail.round_id.in_(round_ids)).all():
                details[(detail.user_id, detail.round_id)].append(detail)
            for pick in Pick.query.filter(Pick.round_id.in_(round_ids)).all():
                picks[(pick.user_id, pick.round_id)] = pick

        return rounds, participants, details, picks

    def _ranked(self, entries, key="totalPoints"):
        # Participants arrive ordered by name; sorted() is stable so ties keep that order
        entries = sorted(entries, key=lambda e: e[key], reverse=True)
        for entry, rank in zip(entries, competition_ranks([e[key] for e in entries])):
            entry["rank"] = rank
        return entries

    def leaderboard(self, season, rules=None):
        """
        Full leaderboard for a season.

        Only completed rounds contribute points; other rounds are listed
        with their picks and a null score.
        """
        rules = rules if rules is not None else self.rules_for_season(season)
        rounds, participants, details, picks = self._load_season(season)

        entries = []
        for user in participants:
            user_picks = {}
            user_scores = {}
            total_points = 0

            for round_ in rounds:
                pick = picks.get((user.id, round_.id))
                user_picks[round_.id] = (
                    {
                        "pickItems": [
                            {"pickNumber": item.pick_number, "pickValue": item.pick_value}
                            for item in pick.items
                        ]
                    }
                    if pick
                    else None
                )

                round_details = details.get((user.id, round_.id))
                if round_.status == Round.STATUS_COMPLETED and round_details:
                    points = round_points(round_details, rules)
                    user_scores[round_.id] = {
                        "places": {d.place: d.count for d in round_details},
                        "total_points": points,
                    }
                    total_points += points
                else:
                    user_scores[round_.id] = None

            entries.append(
                {
                    "userId": user.id,
                    "userName": user.name,
                    "picks": user_picks,
                    "scores": user_scores,
                    "totalPoints": total_points,
                    "rank": 0,
                }
            )

        leaderboard = self._ranked(entries)
        logger.debug(
            f"Leaderboard for season {season.id}: {len(leaderboard)} users, "
            f"{len(rounds)} rounds, top score "
            f"{leaderboard[0]['totalPoints'] if leaderboard else 0}"
        )

        return {"rounds": [r.to_dict() for r in rounds], "leaderboard": leaderboard}

    def final_standings(self, season, rules=None):
        """Ranked [{user_id, name, total_points, rank}] for a season"""
        board = self.leaderboard(season, rules=rules)["leaderboard"]
        return [
            {
                "user_id": entry["userId"],
                "name": entry["userName"],
                "total_points": entry["totalPoints"],
                "rank": entry["rank"],
            }
            for entry in board
        ]

    def cumulative_graph(self, season, rules=None):
        """Running point totals per participant across completed rounds"""
        rules = rules if rules is not None else self.rules_for_season(season)
        rounds, participants, details, _ = self._load_season(season)
        completed = [r for r in rounds if r.status == Round.STATUS_COMPLETED]

        graph = []
        for user in participants:
            running = 0
            series = [{"roundId": 0, "roundName": "Start", "points": 0}]
            for round_ in completed:
                running += round_points(details.get((user.id, round_.id), []), rules)
                series.append(
                    {"roundId": round_.id, "roundName": round_.sport_name, "points": running}
                )
            graph.append({"userId": user.id, "userName": user.name, "points": series})

        return graph

    def user_total_points(self, user_id, season, rules=None):
        """Season total for one user over completed rounds"""
        rules = rules if rules is not None else self.rules_for_season(season)
        rows = (
            db.session.query(ScoreDetail.place, db.func.sum(ScoreDetail.count))
            .join(Round, Round.id == ScoreDetail.round_id)
            .filter(
                ScoreDetail.user_id == user_id,
                Round.season_id == season.id,
                Round.status == Round.STATUS_COMPLETED,
                Round.deleted_at.is_(None),
            )
            .group_by(ScoreDetail.place)
            .all()
        )
        return round_points([{"place": place, "count": count} for place, count in rows], rules)
