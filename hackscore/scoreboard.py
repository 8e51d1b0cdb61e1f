"""
Main HackathonSystem class that wires configuration, storage and routes.
"""

import asyncio
import logging
from typing import Optional

import aiohttp_cors
from aiohttp import web, web_runner

from .admin_handlers import AdminHandlers
from .auth import Authenticator
from .config import HackathonConfig
from .database import DatabaseManager
from .event_handlers import EventHandlers
from .web_handlers import WebHandlers, error_middleware

logger = logging.getLogger(__name__)


class HackathonSystem:
    """Async hackathon scoreboard with a JSON API and a leaderboard page."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 5000,
        db_path: str = "hackathon.db",
        config_path: str = "hackathon_config.json",
        config: Optional[HackathonConfig] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db_path = db_path

        self.config = config or HackathonConfig(config_path)
        self.db = DatabaseManager(db_path, self.config)
        self.auth = Authenticator(self.db, self.config)
        self.web_handlers = WebHandlers(self.db, self.config, self.auth)
        self.admin_handlers = AdminHandlers(self.db, self.config)
        self.event_handlers = EventHandlers(self.db, self.config)

    async def init_db(self) -> None:
        """
        Initialize the database.

        Creates database tables and indexes if they do not exist.
        """
        await self.db.init_db()

    def create_app(self) -> web.Application:
        """
        Build the aiohttp application with all routes and CORS.

        @return: Configured application
        """
        app = web.Application(middlewares=[error_middleware, self.auth.middleware])
        router = app.router
        w = self.web_handlers
        a = self.admin_handlers
        e = self.event_handlers

        router.add_get("/", w.web_index)
        router.add_get("/api/health", w.web_health)

        router.add_post("/api/auth/login", w.web_login)
        router.add_get("/api/auth/me", w.web_me)

        router.add_get("/api/evaluator/profile", w.web_evaluator_profile)
        router.add_get("/api/evaluator/teams", w.web_evaluator_teams)
        router.add_get("/api/evaluator/search/{team_number}", w.web_evaluator_search)
        router.add_get("/api/evaluator/teams/{team_id}", w.web_evaluator_team)
        router.add_post(
            "/api/evaluator/teams/{team_id}/score/{round}", w.web_submit_score
        )
        router.add_get("/api/evaluator/flash-round-teams", w.web_evaluator_flash_teams)
        router.add_put(
            "/api/evaluator/teams/{team_id}/tasks/{round}", w.web_evaluator_update_tasks
        )
        router.add_post(
            "/api/evaluator/teams/{team_id}/publish/{round}",
            w.web_evaluator_publish_tasks,
        )

        router.add_get("/api/teamlead/dashboard", w.web_teamlead_dashboard)
        router.add_get("/api/teamlead/tasks", w.web_teamlead_tasks)

        router.add_get("/api/admin/teams", a.web_teams)
        router.add_get("/api/admin/teams/{team_id}", a.web_team)
        router.add_put("/api/admin/teams/{team_id}/tasks/{round}", a.web_update_tasks)
        router.add_post("/api/admin/teams/{team_id}/publish/{round}", a.web_publish_tasks)
        router.add_post("/api/admin/publish-all", a.web_publish_all)
        router.add_post("/api/admin/teams/{team_id}/flash-round", a.web_select_flash_round)
        router.add_delete(
            "/api/admin/teams/{team_id}/flash-round", a.web_remove_flash_round
        )
        router.add_put("/api/admin/teams/{team_id}/score/{round}", a.web_override_score)
        router.add_get("/api/admin/leaderboard", a.web_leaderboard)
        router.add_get("/api/admin/export", a.web_export)

        router.add_post("/api/timer/start", e.web_timer_start)
        router.add_get("/api/timer/active", e.web_timer_active)
        router.add_post("/api/timer/stop", e.web_timer_stop)
        router.add_get("/api/timer/history", e.web_timer_history)

        router.add_get("/api/game/leaderboard", e.web_game_leaderboard)
        router.add_get("/api/game/score/{team_id}", e.web_game_score)
        router.add_post("/api/game/score", e.web_game_submit)
        router.add_delete("/api/game/score/{team_id}", e.web_game_reset)

        # CORS for the configured frontends only
        cors = aiohttp_cors.setup(
            app,
            defaults={
                origin: aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    allow_headers=("Content-Type", "Authorization"),
                    allow_methods=("GET", "POST", "PUT", "DELETE", "OPTIONS"),
                )
                for origin in self.config.allowed_origins()
            },
        )
        for route in list(app.router.routes()):
            cors.add(route)

        return app

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind (default uses configured host)
        @param port: Port number to use (default uses configured port)
        @return: AppRunner instance for the web server
        """
        host = host or self.host
        port = port or self.port

        app_runner = web_runner.AppRunner(self.create_app())
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        logger.info("%s API running on http://%s:%s", self.config.get("event_name"), host, port)
        return app_runner

    async def run(self) -> None:
        """
        Run the web server until cancelled.
        """
        runner = await self.start_web_server()
        try:
            await asyncio.Event().wait()
        finally:
            logger.info("Shutting down server...")
            await runner.cleanup()

    async def print_full_scoreboard(self) -> None:
        await self.db.print_full_scoreboard()
