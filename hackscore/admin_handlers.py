"""
Admin route handlers: team management, flash round selection, score
overrides, leaderboard and CSV export.
"""

import csv
import io
import logging
from typing import Any, Dict, List

from aiohttp import web

from .auth import current_user, require_role
from .errors import ValidationError
from .models import Role, Round, Team
from .web_handlers import fetch_team, json_ok, parse_domain, parse_number, parse_team_id, read_json

logger = logging.getLogger(__name__)

EXPORT_HEADER = [
    "Rank",
    "Team Number",
    "Team Name",
    "Domain",
    "Round 1",
    "Round 2",
    "Round 3",
    "Round 4",
    "Total Score",
    "Flash Round",
]


def leaderboard_rows(teams: List[Team]) -> List[Dict[str, Any]]:
    """
    Rank teams in the order given (best first).

    @param teams: Teams sorted by total score
    @return: List of ranking dictionaries, rank = position
    """
    return [
        {
            "id": team.id,
            "rank": rank,
            "team_name": team.team_name,
            "team_number": team.team_number,
            "domain": team.domain.value,
            "total_score": team.total_score,
            "scores": {r.value: s.to_dict() for r, s in team.scores.items()},
            "is_flash_round_selected": team.is_flash_round_selected,
        }
        for rank, team in enumerate(teams, 1)
    ]


def export_csv(teams: List[Team]) -> str:
    """
    Render the leaderboard as CSV.

    Unscored rounds are left blank.

    @param teams: Teams sorted by total score
    @return: CSV text with a header row
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADER)

    for rank, team in enumerate(teams, 1):
        finals = [team.scores[r].final_score for r in Round]
        writer.writerow(
            [rank, team.team_number, team.team_name, team.domain.value]
            + ["" if f is None else f for f in finals]
            + [team.total_score, "Yes" if team.is_flash_round_selected else "No"]
        )
    return buffer.getvalue()


class AdminHandlers:
    """Handles admin-only routes."""

    def __init__(
        self,
        db_manager: Any,
        config: Any,
    ) -> None:
        self.db = db_manager
        self.config = config

    @require_role(Role.ADMIN)
    async def web_teams(
        self,
        request: web.Request,
    ) -> web.Response:
        domain = parse_domain(request.query.get("domain"))
        teams = await self.db.list_teams(domain=domain)
        return json_ok([t.to_document() for t in teams], count=len(teams))

    @require_role(Role.ADMIN)
    async def web_team(
        self,
        request: web.Request,
    ) -> web.Response:
        team = await fetch_team(self.db, parse_team_id(request))
        return json_ok(team.to_document())

    @require_role(Role.ADMIN)
    async def web_update_tasks(
        self,
        request: web.Request,
    ) -> web.Response:
        team_id = parse_team_id(request)
        round_ = Round.parse(request.match_info["round"])

        tasks = (await read_json(request)).get("tasks")
        if not isinstance(tasks, list):
            raise ValidationError("Tasks must be a list")

        team = await self.db.update_team(team_id, lambda t: t.set_tasks(round_, tasks))
        return json_ok(team.to_document(), message=f"Tasks updated for {round_.value}")

    @require_role(Role.ADMIN)
    async def web_publish_tasks(
        self,
        request: web.Request,
    ) -> web.Response:
        team_id = parse_team_id(request)
        round_ = Round.parse(request.match_info["round"])

        team = await self.db.update_team(team_id, lambda t: t.publish_tasks(round_))
        return json_ok(
            team.to_document(),
            message=f"{round_.value} tasks published for team {team.team_name}",
        )

    @require_role(Role.ADMIN)
    async def web_publish_all(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Publish tasks of one round, or of every round, for all teams.

        @param request: HTTP request with optional JSON "round"
        @return: JSON response with the number of teams updated
        """
        body = await read_json(request)
        round_value = body.get("round")
        rounds = [Round.parse(round_value)] if round_value else list(Round)

        def publish(team: Team) -> None:
            for round_ in rounds:
                team.publish_tasks(round_)

        teams = await self.db.list_teams()
        for team in teams:
            await self.db.update_team(team.id, publish)

        logger.info("Published %s tasks for %d teams", round_value or "all", len(teams))
        message = (
            f"{round_value} tasks published for all teams"
            if round_value
            else "All tasks published for all teams"
        )
        return json_ok(None, message=message, count=len(teams))

    @require_role(Role.ADMIN)
    async def web_select_flash_round(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Select a team for the flash round, optionally setting its maximum.

        @param request: HTTP request with team id and optional JSON max_score
        @return: JSON response with the updated team
        """
        team_id = parse_team_id(request)
        max_score = (await read_json(request)).get("max_score")
        limit = self.config.get("rounds", "flash_round_max_limit")

        if max_score is not None and (
            isinstance(max_score, bool) or not isinstance(max_score, int)
        ):
            raise ValidationError(f"Max score must be between 0 and {limit}")

        team = await self.db.update_team(
            team_id, lambda t: t.select_for_flash_round(max_score, limit=limit)
        )
        logger.info(
            "Team %d selected for flash round (max %s)",
            team.team_number,
            team.scores[Round.ROUND4].max_score,
        )
        return json_ok(
            team.to_document(), message=f"{team.team_name} selected for Flash Round"
        )

    @require_role(Role.ADMIN)
    async def web_remove_flash_round(
        self,
        request: web.Request,
    ) -> web.Response:
        team = await self.db.update_team(
            parse_team_id(request), lambda t: t.remove_from_flash_round()
        )
        logger.info("Team %d removed from flash round", team.team_number)
        return json_ok(
            team.to_document(), message=f"{team.team_name} removed from Flash Round"
        )

    @require_role(Role.ADMIN)
    async def web_override_score(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Force a round's staff score to a target value.

        Goes through the same recomputation as a normal submission.

        @param request: HTTP request with team id, round and JSON score
        @return: JSON response with the new final and total scores
        """
        admin = current_user(request)
        team_id = parse_team_id(request)
        round_ = Round.parse(request.match_info["round"])
        target = parse_number((await read_json(request)).get("score"))

        team = await self.db.update_team(
            team_id,
            lambda t: t.override_round_score(round_, target, admin.id, admin.name),
        )
        round_score = team.scores[round_]

        logger.info(
            "Admin override on team %d %s: staff score %s -> final %s, total %s",
            team.team_number,
            round_.value,
            target,
            round_score.final_score,
            team.total_score,
        )
        return json_ok(
            {
                "team_name": team.team_name,
                "round": round_.value,
                "max_score": round_score.max_score,
                "final_score": round_score.final_score,
                "total_evaluations": len(round_score.evaluations),
                "total_score": team.total_score,
            },
            message=f"Score overridden for {round_.value}",
        )

    @require_role(Role.ADMIN)
    async def web_leaderboard(
        self,
        _: web.Request,
    ) -> web.Response:
        teams = await self.db.leaderboard()
        return json_ok(leaderboard_rows(teams))

    @require_role(Role.ADMIN)
    async def web_export(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Download the leaderboard as a CSV file.

        @param _: Unused request parameter
        @return: CSV attachment response
        """
        teams = await self.db.leaderboard()
        return web.Response(
            text=export_csv(teams),
            content_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="leaderboard.csv"'},
        )
