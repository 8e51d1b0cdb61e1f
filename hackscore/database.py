"""
Database operations for the hackathon scoreboard.

Teams are stored as JSON documents alongside a few indexed columns. Every team
mutation runs inside a ``BEGIN IMMEDIATE`` transaction so that loading the
document, appending an evaluation, recomputing scores and writing the result
back happen atomically per team.
"""

import json
import logging
import sqlite3
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiosqlite

from .errors import ConflictError, NotFoundError
from .models import (
    Domain,
    EvaluatorType,
    GameScore,
    Role,
    Team,
    Timer,
    User,
    format_datetime,
    parse_datetime,
    utcnow,
)

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages database operations with per-team transactions and caching."""

    def __init__(
        self,
        db_path: str,
        config: Any,
    ) -> None:
        self.db_path = db_path
        self.config = config
        # Simple in-memory cache with TTL
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._cache_ttl = 30  # 30 seconds TTL

    def _get_cache_key(self, *args: Any) -> str:
        """
        Generate a cache key from arguments.

        @param args: Variable arguments to create cache key from
        @return: String cache key generated from arguments
        """
        return ":".join(str(arg) for arg in args)

    def _get_from_cache(
        self,
        cache_key: str,
    ) -> Optional[Any]:
        """
        Get value from cache if valid.

        @param cache_key: String cache key to lookup
        @return: Cached data if valid, None if expired or not found
        """
        if cache_key in self._cache:
            data, timestamp = self._cache[cache_key]

            if time.time() - timestamp < self._cache_ttl:
                return data
            else:
                del self._cache[cache_key]
        return None

    def _set_cache(
        self,
        cache_key: str,
        data: Any,
    ) -> None:
        self._cache[cache_key] = (data, time.time())

    def _invalidate_cache(self) -> None:
        self._cache.clear()

    async def init_db(self) -> None:
        """
        Initialize the SQLite database schema and indexes.
        """
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    name TEXT NOT NULL,
                    role TEXT NOT NULL,
                    domain TEXT,
                    evaluator_type TEXT,
                    team_id INTEGER,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS teams (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    team_number INTEGER NOT NULL UNIQUE,
                    team_name TEXT NOT NULL,
                    domain TEXT NOT NULL,
                    lead_id TEXT,
                    is_flash_round_selected INTEGER NOT NULL DEFAULT 0,
                    total_score REAL NOT NULL DEFAULT 0,
                    document TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS timers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    duration INTEGER NOT NULL,
                    message TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS game_scores (
                    team_id INTEGER PRIMARY KEY,
                    team_name TEXT NOT NULL,
                    team_number INTEGER NOT NULL,
                    score INTEGER NOT NULL DEFAULT 0,
                    high_score INTEGER NOT NULL DEFAULT 0,
                    games_played INTEGER NOT NULL DEFAULT 0,
                    last_played_at TEXT
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_teams_total_score
                ON teams(total_score DESC, id ASC)
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_teams_domain
                ON teams(domain)
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_users_role_domain
                ON users(role, domain)
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_game_high_score
                ON game_scores(high_score DESC, score DESC)
            """)

            await db.commit()

    # -- users -----------------------------------------------------------

    def _user_from_row(self, row: Any) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            role=Role(row["role"]),
            domain=Domain(row["domain"]) if row["domain"] else None,
            evaluator_type=(
                EvaluatorType(row["evaluator_type"]) if row["evaluator_type"] else None
            ),
            team_id=row["team_id"],
            password_hash=row["password_hash"],
        )

    async def create_user(
        self,
        email: str,
        password_hash: str,
        name: str,
        role: Role,
        domain: Optional[Domain] = None,
        evaluator_type: Optional[EvaluatorType] = None,
    ) -> User:
        """
        Create a user account.

        @param email: Login email (stored lowercased)
        @param password_hash: Hashed password
        @param name: Display name
        @param role: User role
        @param domain: Domain the user belongs to (evaluators and team leads)
        @param evaluator_type: Student or staff, for evaluators
        @return: The created User
        @raise ConflictError: If the email is already registered
        """
        user = User(
            id=uuid.uuid4().hex,
            email=email.strip().lower(),
            name=name.strip(),
            role=role,
            domain=domain,
            evaluator_type=evaluator_type,
            password_hash=password_hash,
        )

        async with aiosqlite.connect(self.db_path) as db:
            try:
                await db.execute(
                    "INSERT INTO users (id, email, password_hash, name, role, domain, "
                    "evaluator_type) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        user.id,
                        user.email,
                        password_hash,
                        user.name,
                        role.value,
                        domain.value if domain else None,
                        evaluator_type.value if evaluator_type else None,
                    ),
                )
            except sqlite3.IntegrityError:
                raise ConflictError(f"User {user.email} already exists") from None
            await db.commit()

        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
        return self._user_from_row(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
            )
            row = await cursor.fetchone()
        return self._user_from_row(row) if row else None

    async def delete_users(
        self,
        role: Role,
        evaluator_type: Optional[EvaluatorType] = None,
    ) -> int:
        """
        Delete users by role and optional evaluator type.

        @return: Number of deleted users
        """
        query = "DELETE FROM users WHERE role = ?"
        params: List[Any] = [role.value]
        if evaluator_type is not None:
            query += " AND evaluator_type = ?"
            params.append(evaluator_type.value)

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            await db.commit()
            return cursor.rowcount

    async def link_team_lead(self, user_id: str, team_id: int) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "UPDATE users SET team_id = ? WHERE id = ?", (team_id, user_id)
            )
            await db.commit()

    # -- teams -----------------------------------------------------------

    def _team_from_row(self, row: Any) -> Team:
        team = Team.from_document(json.loads(row["document"]))
        team.id = row["id"]
        return team

    async def _write_team(self, db: Any, team: Team) -> None:
        await db.execute(
            "UPDATE teams SET team_name = ?, domain = ?, lead_id = ?, "
            "is_flash_round_selected = ?, total_score = ?, document = ?, updated_at = ? "
            "WHERE id = ?",
            (
                team.team_name,
                team.domain.value,
                team.lead_id,
                int(team.is_flash_round_selected),
                team.total_score,
                json.dumps(team.to_document()),
                format_datetime(team.updated_at),
                team.id,
            ),
        )

    async def create_team(self, team: Team) -> Team:
        """
        Insert a new team.

        @param team: Team to store; its id is set from the new row
        @return: The stored team
        @raise ConflictError: If the team number is taken
        """
        async with aiosqlite.connect(self.db_path) as db:
            try:
                cursor = await db.execute(
                    "INSERT INTO teams (team_number, team_name, domain, lead_id, "
                    "is_flash_round_selected, total_score, document, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        team.team_number,
                        team.team_name,
                        team.domain.value,
                        team.lead_id,
                        int(team.is_flash_round_selected),
                        team.total_score,
                        "{}",
                        format_datetime(team.updated_at),
                    ),
                )
            except sqlite3.IntegrityError:
                raise ConflictError(
                    f"Team number {team.team_number} already exists"
                ) from None

            team.id = cursor.lastrowid
            await self._write_team(db, team)
            await db.commit()

        self._invalidate_cache()
        return team

    async def update_team(
        self,
        team_id: int,
        mutate: Callable[[Team], Any],
    ) -> Team:
        """
        Apply a mutation to a team atomically.

        The team is loaded and written back inside one immediate transaction,
        so concurrent evaluators submitting to the same team are serialised.
        If ``mutate`` raises, nothing is written.

        @param team_id: Id of the team to update
        @param mutate: Callable that changes the loaded team in place
        @return: The updated team
        @raise NotFoundError: If the team does not exist
        """
        async with aiosqlite.connect(self.db_path, isolation_level=None) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("BEGIN IMMEDIATE")
            try:
                cursor = await db.execute("SELECT * FROM teams WHERE id = ?", (team_id,))
                row = await cursor.fetchone()
                if row is None:
                    raise NotFoundError("Team not found")

                team = self._team_from_row(row)
                mutate(team)
                await self._write_team(db, team)
                await db.execute("COMMIT")
            except Exception:
                await db.execute("ROLLBACK")
                raise

        self._invalidate_cache()
        return team

    async def get_team(self, team_id: int) -> Optional[Team]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM teams WHERE id = ?", (team_id,))
            row = await cursor.fetchone()
        return self._team_from_row(row) if row else None

    async def get_team_by_number(self, team_number: int) -> Optional[Team]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM teams WHERE team_number = ?", (team_number,)
            )
            row = await cursor.fetchone()
        return self._team_from_row(row) if row else None

    async def get_team_by_lead(self, lead_id: str) -> Optional[Team]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM teams WHERE lead_id = ?", (lead_id,))
            row = await cursor.fetchone()
        return self._team_from_row(row) if row else None

    async def list_teams(
        self,
        domain: Optional[Domain] = None,
        flash_only: bool = False,
    ) -> List[Team]:
        """
        List teams ordered by team number.

        @param domain: Only teams in this domain
        @param flash_only: Only teams selected for the flash round
        @return: List of teams
        """
        query = "SELECT * FROM teams"
        clauses = []
        params: List[Any] = []

        if domain is not None:
            clauses.append("domain = ?")
            params.append(domain.value)
        if flash_only:
            clauses.append("is_flash_round_selected = 1")
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY team_number ASC"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        return [self._team_from_row(row) for row in rows]

    async def leaderboard(self) -> List[Team]:
        """
        Get all teams ranked by total score.

        Equal totals keep the order in which the teams were created.

        @return: Teams, best first
        """
        cache_key = self._get_cache_key("leaderboard")
        cached_data = self._get_from_cache(cache_key)

        if cached_data is not None:
            return list(cached_data)

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM teams ORDER BY total_score DESC, id ASC"
            )
            rows = await cursor.fetchall()

        result = [self._team_from_row(row) for row in rows]
        self._set_cache(cache_key, result)
        return result

    async def next_team_number(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT MAX(team_number) FROM teams")
            row = await cursor.fetchone()
        return (row[0] or 0) + 1

    # -- timers ----------------------------------------------------------

    def _timer_from_row(self, row: Any) -> Timer:
        return Timer(
            id=row["id"],
            event=row["event"],
            start_time=parse_datetime(row["start_time"]),
            duration=row["duration"],
            message=row["message"],
            is_active=bool(row["is_active"]),
            created_at=parse_datetime(row["created_at"]),
        )

    async def start_timer(self, timer: Timer) -> Timer:
        """
        Store a new active timer, deactivating any running ones.

        @param timer: Timer to start
        @return: The stored timer with its id set
        """
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("UPDATE timers SET is_active = 0 WHERE is_active = 1")
            cursor = await db.execute(
                "INSERT INTO timers (event, start_time, duration, message, is_active, "
                "created_at) VALUES (?, ?, ?, ?, 1, ?)",
                (
                    timer.event,
                    format_datetime(timer.start_time),
                    timer.duration,
                    timer.message,
                    format_datetime(timer.created_at),
                ),
            )
            await db.commit()

        timer.id = cursor.lastrowid
        timer.is_active = True
        return timer

    async def active_timer(self) -> Optional[Timer]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM timers WHERE is_active = 1 "
                "ORDER BY created_at DESC, id DESC LIMIT 1"
            )
            row = await cursor.fetchone()
        return self._timer_from_row(row) if row else None

    async def deactivate_timer(self, timer_id: int) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("UPDATE timers SET is_active = 0 WHERE id = ?", (timer_id,))
            await db.commit()

    async def timer_history(self, limit: int = 10) -> List[Timer]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM timers ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return [self._timer_from_row(row) for row in rows]

    # -- game scores -----------------------------------------------------

    def _game_score_from_row(self, row: Any) -> GameScore:
        return GameScore(
            team_id=row["team_id"],
            team_name=row["team_name"],
            team_number=row["team_number"],
            score=row["score"],
            high_score=row["high_score"],
            games_played=row["games_played"],
            last_played_at=parse_datetime(row["last_played_at"]),
        )

    async def get_game_score(self, team_id: int) -> Optional[GameScore]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM game_scores WHERE team_id = ?", (team_id,)
            )
            row = await cursor.fetchone()
        return self._game_score_from_row(row) if row else None

    async def save_game_score(self, game_score: GameScore) -> GameScore:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO game_scores (team_id, team_name, team_number, score, "
                "high_score, games_played, last_played_at) VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(team_id) DO UPDATE SET team_name = excluded.team_name, "
                "team_number = excluded.team_number, score = excluded.score, "
                "high_score = excluded.high_score, games_played = excluded.games_played, "
                "last_played_at = excluded.last_played_at",
                (
                    game_score.team_id,
                    game_score.team_name,
                    game_score.team_number,
                    game_score.score,
                    game_score.high_score,
                    game_score.games_played,
                    format_datetime(game_score.last_played_at),
                ),
            )
            await db.commit()
        return game_score

    async def game_leaderboard(self, limit: int = 50) -> List[GameScore]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM game_scores ORDER BY high_score DESC, score DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return [self._game_score_from_row(row) for row in rows]

    async def delete_game_score(self, team_id: int) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM game_scores WHERE team_id = ?", (team_id,)
            )
            await db.commit()
            return cursor.rowcount > 0

    async def print_full_scoreboard(self) -> None:
        """
        Print the team ranking to the console.
        """
        teams = await self.leaderboard()

        print("\n" + "=" * 50)
        print("TEAM LEADERBOARD")
        print("=" * 50)

        if not teams:
            print("Leaderboard is empty")
            return

        for position, team in enumerate(teams, 1):
            print(
                f"{position:3d}. #{team.team_number:<4d} {team.team_name:<25} "
                f"{team.total_score:8.2f}  ({team.domain.value})"
            )
        print(f"\nGenerated {format_datetime(utcnow())}")
