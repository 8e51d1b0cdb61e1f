"""
Countdown timer and mini-game route handlers.
"""

import logging
import math
from typing import Any

from aiohttp import web

from .auth import current_user, require_role
from .errors import NotFoundError, ValidationError
from .models import GameScore, Role, Timer, parse_datetime, utcnow
from .web_handlers import fetch_team, json_ok, parse_team_id, read_json

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000


class EventHandlers:
    """Handles the event timer and the game leaderboard."""

    def __init__(
        self,
        db_manager: Any,
        config: Any,
    ) -> None:
        self.db = db_manager
        self.config = config

    # -- timer -----------------------------------------------------------

    async def web_timer_start(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Start a new countdown, replacing any running one.

        @param request: HTTP request with optional JSON event, timestamp,
            duration (ms) and message
        @return: JSON response with the new timer (201)
        """
        body = await read_json(request)

        try:
            start_time = parse_datetime(body.get("timestamp")) or utcnow()
        except (TypeError, ValueError, AttributeError):
            raise ValidationError("Invalid timestamp") from None

        duration = body.get("duration")
        if duration is None:
            duration = self.config.get("timer", "duration_hours") * HOUR_MS
        elif isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError("Duration must be a positive number of milliseconds")

        timer = await self.db.start_timer(
            Timer(
                start_time=start_time,
                duration=duration,
                message=body.get("message") or self.config.get("timer", "message"),
                event=body.get("event") or "timer_started",
            )
        )
        logger.info("Timer %s started, ends %s", timer.id, timer.end_time.isoformat())

        return json_ok(timer.to_dict(), message="Timer started successfully", status=201)

    async def web_timer_active(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Get the running timer; an expired one is deactivated on read.

        @param _: Unused request parameter
        @return: JSON response with the timer or null data
        """
        timer = await self.db.active_timer()

        if timer is None:
            return json_ok(None, message="No active timer")

        if timer.is_expired():
            await self.db.deactivate_timer(timer.id)
            logger.info("Timer %s expired", timer.id)
            return json_ok(None, message="Timer has expired")

        return json_ok(timer.to_dict())

    async def web_timer_stop(
        self,
        _: web.Request,
    ) -> web.Response:
        timer = await self.db.active_timer()
        if timer is None:
            raise NotFoundError("No active timer to stop")

        await self.db.deactivate_timer(timer.id)
        logger.info("Timer %s stopped", timer.id)
        return json_ok(
            {"id": timer.id, "stopped_at": utcnow().isoformat()},
            message="Timer stopped successfully",
        )

    async def web_timer_history(
        self,
        _: web.Request,
    ) -> web.Response:
        timers = await self.db.timer_history(10)
        return json_ok([t.to_dict() for t in timers], count=len(timers))

    # -- game ------------------------------------------------------------

    async def web_game_leaderboard(
        self,
        _: web.Request,
    ) -> web.Response:
        scores = await self.db.game_leaderboard(
            self.config.get("game", "leaderboard_limit")
        )
        return json_ok([s.to_dict() for s in scores])

    async def _game_score_for(self, team_id: int) -> GameScore:
        game_score = await self.db.get_game_score(team_id)
        if game_score is None:
            team = await fetch_team(self.db, team_id)
            game_score = GameScore(
                team_id=team.id,
                team_name=team.team_name,
                team_number=team.team_number,
            )
        return game_score

    @require_role()
    async def web_game_score(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Get a team's game score, creating an empty record on first read.

        @param request: HTTP request containing the team id
        @return: JSON response with the game score
        """
        game_score = await self._game_score_for(parse_team_id(request))
        await self.db.save_game_score(game_score)
        return json_ok(game_score.to_dict())

    @require_role()
    async def web_game_submit(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Record a game result.

        Non-admin users always post for their own team, whatever team_id
        the body names.

        @param request: HTTP request with JSON team_id and score
        @return: JSON response with the updated game score
        """
        user = current_user(request)
        body = await read_json(request)
        team_id = body.get("team_id")
        score = body.get("score")

        if not user.is_admin or team_id is None:
            team_id = user.team_id

        if team_id is None or score is None:
            raise ValidationError(
                "Team ID (or valid Team Lead login) and score are required"
            )
        if (
            isinstance(score, bool)
            or not isinstance(score, (int, float))
            or (isinstance(score, float) and not math.isfinite(score))
        ):
            raise ValidationError("Score must be a number")
        if not isinstance(team_id, int) or isinstance(team_id, bool):
            raise ValidationError("Invalid team ID")

        game_score = await self._game_score_for(team_id)
        game_score.record_play(int(score), self.config.get("game", "max_score"))
        await self.db.save_game_score(game_score)

        logger.info(
            "Game score for team %d: %d (high %d)",
            game_score.team_number,
            game_score.score,
            game_score.high_score,
        )
        return json_ok(game_score.to_dict(), message="Score updated successfully")

    @require_role(Role.ADMIN)
    async def web_game_reset(
        self,
        request: web.Request,
    ) -> web.Response:
        if not await self.db.delete_game_score(parse_team_id(request)):
            raise NotFoundError("Game score not found")
        return json_ok(None, message="Game score reset successfully")
