"""
Web route handlers for the hackathon scoreboard: public pages, login,
evaluator and team lead routes.
"""

import json
import logging
import math
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web
from jinja2 import Environment, FileSystemLoader

from .auth import current_user, require_role
from .errors import NotFoundError, PermissionDeniedError, ScoreboardError, ValidationError
from .models import (
    MAX_FEEDBACK_LENGTH,
    Domain,
    Evaluation,
    EvaluatorType,
    Role,
    Round,
    Team,
    User,
    format_datetime,
    utcnow,
)

logger = logging.getLogger(__name__)

TEMPLATES_PATH = Path(__file__).parent / "templates"


@web.middleware
async def error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """
    Turn scoreboard errors into JSON responses.

    Unexpected exceptions are logged and answered with a generic 500.
    """
    try:
        return await handler(request)
    except ScoreboardError as e:
        logger.warning("%s %s rejected: %s", request.method, request.path, e.message)
        return web.json_response(e.to_dict(), status=e.status)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response(
            {"success": False, "message": "Server error", "code": "INTERNAL_ERROR"},
            status=500,
        )


def json_ok(
    data: Any = None,
    message: Optional[str] = None,
    status: int = 200,
    **extra: Any,
) -> web.Response:
    """
    Build a success response.

    @param data: Payload placed under "data"
    @param message: Optional human-readable message
    @param status: HTTP status code (default 200)
    @param extra: Extra top-level fields such as "count"
    @return: JSON response
    """
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    body.update(extra)
    body["data"] = data
    return web.json_response(body, status=status)


async def read_json(request: web.Request) -> Dict[str, Any]:
    """
    Read a JSON object body; an empty body reads as {}.

    @raise ValidationError: If the body is not a JSON object
    """
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def parse_team_id(request: web.Request) -> int:
    try:
        return int(request.match_info["team_id"])
    except ValueError:
        raise ValidationError("Invalid team ID") from None


def parse_number(value: Any, field_name: str = "Score") -> float:
    """
    Validate a numeric, non-negative JSON value.

    @param value: Raw JSON value
    @param field_name: Name used in error messages
    @return: The number
    @raise ValidationError: If the value is not a finite, non-negative number
    """
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or (isinstance(value, float) and not math.isfinite(value))
    ):
        raise ValidationError(f"{field_name} must be a number")
    if value < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return value


def parse_feedback(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str) or len(value.strip()) > MAX_FEEDBACK_LENGTH:
        raise ValidationError(
            f"Feedback must be a string with max {MAX_FEEDBACK_LENGTH} characters"
        )
    return value.strip()


def parse_parameters(value: Any) -> Dict[str, float]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("Parameters must be an object of named scores")
    return {str(k): parse_number(v, f"Parameter '{k}'") for k, v in value.items()}


def parse_domain(value: Optional[str]) -> Optional[Domain]:
    return Domain.parse(value) if value else None


async def fetch_team(db: Any, team_id: int) -> Team:
    team = await db.get_team(team_id)
    if team is None:
        raise NotFoundError("Team not found")
    return team


class WebHandlers:
    """Handles public, auth, evaluator and team lead routes."""

    def __init__(
        self,
        db_manager: Any,
        config: Any,
        authenticator: Any,
        templates_path: Path = TEMPLATES_PATH,
    ) -> None:
        self.db = db_manager
        self.config = config
        self.auth = authenticator

        self.jinja_env = Environment(
            loader=FileSystemLoader(str(templates_path)),
            auto_reload=False,
            cache_size=50,
            autoescape=True,
        )

    async def load_team(self, team_id: int) -> Team:
        return await fetch_team(self.db, team_id)

    def check_domain(self, user: User, team: Team) -> None:
        """
        Make sure an evaluator only touches teams in their domain.

        @raise PermissionDeniedError: If the team is in another domain
        """
        if user.domain is not None and team.domain != user.domain:
            raise PermissionDeniedError(
                f"Team {team.team_number} is not in your assigned domain "
                f"({user.domain.value})"
            )

    # -- public ----------------------------------------------------------

    async def web_index(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Web interface main page with the team leaderboard.

        @param _: Unused request parameter
        @return: HTTP response with rendered leaderboard page
        """
        teams = await self.db.leaderboard()

        template = self.jinja_env.get_template("leaderboard.html")
        html = template.render(
            title="Leaderboard",
            event_name=self.config.get("event_name"),
            teams=teams,
            rounds=list(Round),
            generated_at=format_datetime(utcnow()),
        )
        return web.Response(text=html, content_type="text/html")

    async def web_health(
        self,
        _: web.Request,
    ) -> web.Response:
        return web.json_response(
            {"status": "ok", "message": f"{self.config.get('event_name')} API is running"}
        )

    # -- auth ------------------------------------------------------------

    async def web_login(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Log a user in.

        @param request: HTTP request with JSON email and password
        @return: JSON response with the user and a bearer token
        """
        body = await read_json(request)
        email = body.get("email")
        password = body.get("password")

        if not isinstance(email, str) or "@" not in email:
            raise ValidationError("Please provide a valid email")
        if not isinstance(password, str) or len(password) < 6:
            raise ValidationError("Password must be at least 6 characters")

        user = await self.auth.authenticate(email, password)
        logger.info("User %s logged in as %s", user.email, user.role.value)

        data = user.to_dict()
        data["token"] = self.auth.create_token(user.id)
        return json_ok(data)

    @require_role()
    async def web_me(
        self,
        request: web.Request,
    ) -> web.Response:
        user = current_user(request)
        data = user.to_dict()
        if user.team_id is not None:
            team = await self.db.get_team(user.team_id)
            data["team"] = team.to_document() if team else None
        return json_ok(data)

    # -- evaluator -------------------------------------------------------

    @require_role(Role.EVALUATOR)
    async def web_evaluator_profile(
        self,
        request: web.Request,
    ) -> web.Response:
        return json_ok(current_user(request).to_dict())

    @require_role(Role.EVALUATOR)
    async def web_evaluator_teams(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        List the teams an evaluator may score.

        @param request: HTTP request from an evaluator
        @return: JSON response with teams in the evaluator's domain
        """
        user = current_user(request)
        teams = await self.db.list_teams(domain=user.domain)
        return json_ok([t.to_document() for t in teams], count=len(teams))

    @require_role(Role.EVALUATOR)
    async def web_evaluator_search(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Find a team by its team number.

        @param request: HTTP request containing the team number
        @return: JSON response with the team
        """
        max_number = self.config.get("teams", "max_team_number")
        try:
            team_number = int(request.match_info["team_number"])
        except ValueError:
            team_number = 0
        if team_number < 1 or team_number > max_number:
            raise ValidationError(f"Team number must be between 1 and {max_number}")

        team = await self.db.get_team_by_number(team_number)
        if team is None:
            raise NotFoundError(f"Team {team_number} not found")

        self.check_domain(current_user(request), team)
        return json_ok(team.to_document())

    @require_role(Role.EVALUATOR)
    async def web_evaluator_team(
        self,
        request: web.Request,
    ) -> web.Response:
        team = await self.load_team(parse_team_id(request))
        self.check_domain(current_user(request), team)
        return json_ok(team.to_document())

    @require_role(Role.EVALUATOR)
    async def web_submit_score(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Submit an evaluator's score for a round.

        The evaluation is appended and the round and total scores recomputed
        in one transaction. A second submission by the same evaluator is
        rejected.

        @param request: HTTP request with team id, round, and JSON score,
            optional feedback and parameters
        @return: JSON response with the new final and total scores
        """
        user = current_user(request)
        team_id = parse_team_id(request)
        round_ = Round.parse(request.match_info["round"])

        body = await read_json(request)
        score = parse_number(body.get("score"))
        evaluation = Evaluation(
            evaluator_id=user.id,
            evaluator_name=user.name,
            evaluator_type=user.evaluator_type or EvaluatorType.STAFF,
            score=score,
            feedback=parse_feedback(body.get("feedback")),
            parameters=parse_parameters(body.get("parameters")),
        )

        self.check_domain(user, await self.load_team(team_id))
        team = await self.db.update_team(
            team_id, lambda t: t.submit_evaluation(round_, evaluation)
        )
        round_score = team.scores[round_]

        logger.info(
            "%s evaluator %s scored team %d %s: %s -> final %s, total %s",
            evaluation.evaluator_type.value,
            user.email,
            team.team_number,
            round_.value,
            score,
            round_score.final_score,
            team.total_score,
        )

        return json_ok(
            {
                "team_name": team.team_name,
                "round": round_.value,
                "your_score": score,
                "max_score": round_score.max_score,
                "final_score": round_score.final_score,
                "total_evaluations": len(round_score.evaluations),
                "total_score": team.total_score,
            },
            message=f"Score submitted for {round_.value}",
        )

    @require_role(Role.EVALUATOR)
    async def web_evaluator_flash_teams(
        self,
        request: web.Request,
    ) -> web.Response:
        user = current_user(request)
        teams = await self.db.list_teams(domain=user.domain, flash_only=True)
        return json_ok([t.to_document() for t in teams], count=len(teams))

    def _check_student_evaluator(self, user: User, action: str) -> None:
        if user.evaluator_type != EvaluatorType.STUDENT:
            raise PermissionDeniedError(f"Only student evaluators can {action} tasks")

    @require_role(Role.EVALUATOR)
    async def web_evaluator_update_tasks(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Replace a round's tasks for a team (student evaluators only).

        @param request: HTTP request with team id, round and JSON task list
        @return: JSON response with the stored tasks
        """
        user = current_user(request)
        self._check_student_evaluator(user, "manage")
        team_id = parse_team_id(request)
        round_ = Round.parse(request.match_info["round"])

        tasks = (await read_json(request)).get("tasks")
        if not isinstance(tasks, list):
            raise ValidationError("Tasks must be a list")

        self.check_domain(user, await self.load_team(team_id))
        team = await self.db.update_team(team_id, lambda t: t.set_tasks(round_, tasks))

        return json_ok(
            [t.to_dict() for t in team.tasks[round_]],
            message=f"Tasks updated for {round_.value}",
        )

    @require_role(Role.EVALUATOR)
    async def web_evaluator_publish_tasks(
        self,
        request: web.Request,
    ) -> web.Response:
        user = current_user(request)
        self._check_student_evaluator(user, "publish")
        team_id = parse_team_id(request)
        round_ = Round.parse(request.match_info["round"])

        team = await self.load_team(team_id)
        self.check_domain(user, team)
        if not team.tasks[round_]:
            raise ValidationError("No tasks found for this round to publish")

        team = await self.db.update_team(team_id, lambda t: t.publish_tasks(round_))
        return json_ok(
            [t.to_dict() for t in team.tasks[round_]],
            message=f"{round_.value} tasks published for team {team.team_name}",
        )

    # -- team lead -------------------------------------------------------

    async def _lead_team(self, request: web.Request) -> Team:
        team = await self.db.get_team_by_lead(current_user(request).id)
        if team is None:
            raise NotFoundError("Team not found")
        return team

    @require_role(Role.TEAM_LEAD)
    async def web_teamlead_dashboard(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Team lead dashboard: team info and published tasks.

        @param request: HTTP request from a team lead
        @return: JSON response with the team's visible tasks
        """
        team = await self._lead_team(request)
        visible = team.visible_tasks()

        return json_ok(
            {
                "team_name": team.team_name,
                "team_number": team.team_number,
                "members": [m.to_dict() for m in team.members],
                "tasks": {r.value: [t.to_dict() for t in ts] for r, ts in visible.items()},
                "is_flash_round_selected": team.is_flash_round_selected,
            }
        )

    @require_role(Role.TEAM_LEAD)
    async def web_teamlead_tasks(
        self,
        request: web.Request,
    ) -> web.Response:
        team = await self._lead_team(request)

        all_tasks = []
        for round_, tasks in team.visible_tasks().items():
            for task in tasks:
                all_tasks.append(
                    {
                        "round": round_.value,
                        "round_name": round_.display_name,
                        "title": task.title,
                        "description": task.description,
                    }
                )

        return json_ok({"team_name": team.team_name, "tasks": all_tasks})

