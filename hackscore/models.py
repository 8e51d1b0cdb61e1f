"""
Domain model for the hackathon scoreboard.

Teams own four round score slots. Every mutation of a round's evaluations goes
through RoundScore, which re-runs the aggregator and notifies its team so the
total score is never stale.
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .aggregator import aggregate_round, rollup_total
from .errors import (
    DuplicateEvaluationError,
    FlashRoundNotSelectedError,
    StudentEvaluatorExistsError,
    ValidationError,
)

MAX_FEEDBACK_LENGTH = 500
FLASH_ROUND_MAX_LIMIT = 100
ADMIN_ID = "env-admin-only"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp, accepting a trailing "Z".

    @param value: Timestamp string or None
    @return: Timezone-aware datetime (naive values are taken as UTC) or None
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Round(str, Enum):
    ROUND1 = "round1"
    ROUND2 = "round2"
    ROUND3 = "round3"
    ROUND4 = "round4"

    @property
    def display_name(self) -> str:
        return _ROUND_NAMES[self]

    @property
    def default_max_score(self) -> int:
        return _ROUND_MAX_SCORES[self]

    @classmethod
    def parse(cls, value: str) -> "Round":
        """
        Resolve a round name.

        @param value: Round name such as "round1"
        @return: Matching Round
        @raise ValidationError: If the name is not a known round
        """
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid round: {value}") from None


_ROUND_NAMES = {
    Round.ROUND1: "Project Explanation",
    Round.ROUND2: "Progress Demo",
    Round.ROUND3: "Final Presentation",
    Round.ROUND4: "Flash Round",
}

_ROUND_MAX_SCORES = {
    Round.ROUND1: 30,
    Round.ROUND2: 20,
    Round.ROUND3: 50,
    Round.ROUND4: 0,
}


class Domain(str, Enum):
    WEB_DEVELOPMENT = "Web Development"
    WEB3_BLOCKCHAIN = "Web3 & Blockchain"
    IOT_SYSTEMS = "IoT Systems"
    QUANTUM_COMPUTING = "Quantum Computing"
    CYBER_SECURITY = "Cyber Security"
    MACHINE_LEARNING = "Machine Learning"
    AGENTIC_AI = "Agentic AI"
    APP_DEVELOPMENT = "App Development"

    @classmethod
    def parse(cls, value: str) -> "Domain":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid domain: {value}") from None

    @classmethod
    def match(cls, text: str) -> Optional["Domain"]:
        """
        Resolve a loosely typed domain name (as found in registration CSVs).

        Tries an exact case-insensitive match, then a substring match, then
        short keyword aliases.

        @param text: Domain text, possibly with stray punctuation or typos
        @return: Matching Domain or None
        """
        cleaned = text.replace(".", "").replace(",", "").strip().lower()
        if not cleaned:
            return None

        for domain in cls:
            if domain.value.lower() == cleaned:
                return domain

        for domain in cls:
            if domain.value.lower() in cleaned:
                return domain

        for keyword, domain in _DOMAIN_ALIASES:
            if keyword in cleaned.split() or cleaned.startswith(keyword):
                return domain
        return None


_DOMAIN_ALIASES = [
    ("web3", Domain.WEB3_BLOCKCHAIN),
    ("blockchain", Domain.WEB3_BLOCKCHAIN),
    ("iot", Domain.IOT_SYSTEMS),
    ("quantum", Domain.QUANTUM_COMPUTING),
    ("cyber", Domain.CYBER_SECURITY),
    ("ml", Domain.MACHINE_LEARNING),
    ("machine", Domain.MACHINE_LEARNING),
    ("agentic", Domain.AGENTIC_AI),
    ("web", Domain.WEB_DEVELOPMENT),
    ("app", Domain.APP_DEVELOPMENT),
]


class EvaluatorType(str, Enum):
    STUDENT = "student"
    STAFF = "staff"


class Role(str, Enum):
    ADMIN = "admin"
    EVALUATOR = "evaluator"
    TEAM_LEAD = "team_lead"


@dataclass(frozen=True)
class Evaluation:
    """One evaluator's judgment of one team in one round."""

    evaluator_id: str
    evaluator_name: str
    evaluator_type: EvaluatorType
    score: float
    feedback: str = ""
    parameters: Dict[str, float] = field(default_factory=dict)
    evaluated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluator_id": self.evaluator_id,
            "evaluator_name": self.evaluator_name,
            "evaluator_type": self.evaluator_type.value,
            "score": self.score,
            "feedback": self.feedback,
            "parameters": dict(self.parameters),
            "evaluated_at": format_datetime(self.evaluated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Evaluation":
        return cls(
            evaluator_id=str(data["evaluator_id"]),
            evaluator_name=data.get("evaluator_name", ""),
            evaluator_type=EvaluatorType(data["evaluator_type"]),
            score=data["score"],
            feedback=data.get("feedback", ""),
            parameters=dict(data.get("parameters") or {}),
            evaluated_at=parse_datetime(data.get("evaluated_at")) or utcnow(),
        )


class RoundScore:
    """
    Aggregation state for one team in one round.

    ``final_score`` and ``last_calculated_at`` are derived: they are only
    written by ``_recalculate()``, which every mutating method calls.
    """

    def __init__(
        self,
        max_score: float,
        evaluations: Optional[List[Evaluation]] = None,
    ) -> None:
        self.max_score = max_score
        self._evaluations: List[Evaluation] = list(evaluations or [])
        self._final_score: Optional[float] = None
        self._last_calculated_at: Optional[datetime] = None
        self._on_change: Optional[Callable[[], None]] = None

    @property
    def evaluations(self) -> List[Evaluation]:
        return list(self._evaluations)

    @property
    def final_score(self) -> Optional[float]:
        return self._final_score

    @property
    def last_calculated_at(self) -> Optional[datetime]:
        return self._last_calculated_at

    def find_evaluation(self, evaluator_id: str) -> Optional[Evaluation]:
        for evaluation in self._evaluations:
            if evaluation.evaluator_id == evaluator_id:
                return evaluation
        return None

    def has_student_evaluation(self) -> bool:
        return any(
            e.evaluator_type == EvaluatorType.STUDENT for e in self._evaluations
        )

    def check_score(self, score: float) -> None:
        """
        Check that a score fits this round.

        @param score: Candidate score
        @raise ValidationError: If the score is not finite or outside [0, max_score]
        """
        if score < 0 or score > self.max_score or not math.isfinite(score):
            raise ValidationError(f"Score must be between 0 and {self.max_score}")

    def append(self, evaluation: Evaluation) -> None:
        self._evaluations.append(evaluation)
        self._recalculate()

    def override_staff(
        self,
        target: float,
        admin_id: str,
        admin_name: str,
    ) -> None:
        """
        Force the staff mean of this round to a target value.

        Every staff evaluation is set to the target; when there are none, one
        staff evaluation attributed to the admin is added.

        @param target: Score every staff evaluation should carry
        @param admin_id: Identity recorded on a synthesised evaluation
        @param admin_name: Name recorded on a synthesised evaluation
        """
        self.check_score(target)

        if any(e.evaluator_type == EvaluatorType.STAFF for e in self._evaluations):
            self._evaluations = [
                replace(e, score=target) if e.evaluator_type == EvaluatorType.STAFF else e
                for e in self._evaluations
            ]
        else:
            self._evaluations.append(
                Evaluation(
                    evaluator_id=admin_id,
                    evaluator_name=admin_name,
                    evaluator_type=EvaluatorType.STAFF,
                    score=target,
                    feedback="Score set by admin",
                )
            )
        self._recalculate()

    def reset(self, max_score: Optional[float] = None) -> None:
        self._evaluations.clear()
        if max_score is not None:
            self.max_score = max_score
        self._recalculate()

    def _recalculate(self) -> None:
        self._final_score, self._last_calculated_at = aggregate_round(
            self._evaluations
        )
        if self._on_change is not None:
            self._on_change()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluations": [e.to_dict() for e in self._evaluations],
            "final_score": self._final_score,
            "max_score": self.max_score,
            "last_calculated_at": format_datetime(self._last_calculated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoundScore":
        """
        Rebuild a round from its stored document.

        Stored derived values are taken as authoritative; they were written
        in the same update as the evaluations they derive from.
        """
        round_score = cls(
            max_score=data["max_score"],
            evaluations=[Evaluation.from_dict(e) for e in data.get("evaluations", [])],
        )
        round_score._final_score = data.get("final_score")
        round_score._last_calculated_at = parse_datetime(data.get("last_calculated_at"))
        return round_score


@dataclass
class Task:
    title: str
    description: str = ""
    visible: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "visible": self.visible,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """
        Build a task from stored or submitted data.

        @raise ValidationError: If the title is missing
        """
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        return cls(
            title=title,
            description=data.get("description") or "",
            visible=bool(data.get("visible", False)),
            id=data.get("id") or uuid.uuid4().hex,
        )


@dataclass
class Member:
    name: str
    email: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "email": self.email}


class Team:
    """One competing team and its per-round scoring state."""

    def __init__(
        self,
        team_name: str,
        team_number: int,
        domain: Domain,
        lead_id: Optional[str] = None,
        members: Optional[List[Member]] = None,
        round_max_scores: Optional[Dict[Round, float]] = None,
        team_id: Optional[int] = None,
    ) -> None:
        self.id = team_id
        self.team_name = team_name.strip()
        self.team_number = team_number
        self.domain = domain
        self.lead_id = lead_id
        self.members = list(members or [])
        self.is_flash_round_selected = False
        self.tasks: Dict[Round, List[Task]] = {r: [] for r in Round}

        max_scores = round_max_scores or {}
        self.scores: Dict[Round, RoundScore] = {}
        for round_ in Round:
            self._attach(
                round_,
                RoundScore(max_scores.get(round_, round_.default_max_score)),
            )

        self._total_score = 0.0
        self.created_at = utcnow()
        self.updated_at = self.created_at

    @property
    def total_score(self) -> float:
        return self._total_score

    def _attach(self, round_: Round, round_score: RoundScore) -> None:
        round_score._on_change = self._refresh_total
        self.scores[round_] = round_score

    def _refresh_total(self) -> None:
        self._total_score = rollup_total(s.final_score for s in self.scores.values())
        self.updated_at = utcnow()

    def check_round_open(self, round_: Round) -> None:
        if round_ == Round.ROUND4 and not self.is_flash_round_selected:
            raise FlashRoundNotSelectedError(
                "This team is not selected for Flash Round"
            )

    def submit_evaluation(
        self,
        round_: Round,
        evaluation: Evaluation,
    ) -> RoundScore:
        """
        Record an evaluator's score for a round.

        Submissions are append-only: an evaluator who already scored the round
        is rejected, as is a second student evaluator.

        @param round_: Round being scored
        @param evaluation: The new evaluation
        @return: The updated round score
        @raise ScoreboardError: If the submission is not allowed
        """
        self.check_round_open(round_)
        round_score = self.scores[round_]
        round_score.check_score(evaluation.score)

        if round_score.find_evaluation(evaluation.evaluator_id) is not None:
            raise DuplicateEvaluationError(
                "You have already submitted an evaluation for this round. "
                "Modifying submitted scores is not allowed."
            )
        if (
            evaluation.evaluator_type == EvaluatorType.STUDENT
            and round_score.has_student_evaluation()
        ):
            raise StudentEvaluatorExistsError(
                "A student evaluator has already scored this round"
            )

        round_score.append(evaluation)
        return round_score

    def override_round_score(
        self,
        round_: Round,
        target: float,
        admin_id: str = ADMIN_ID,
        admin_name: str = "Admin",
    ) -> RoundScore:
        self.check_round_open(round_)
        round_score = self.scores[round_]
        round_score.override_staff(target, admin_id, admin_name)
        return round_score

    def select_for_flash_round(
        self,
        max_score: Optional[int] = None,
        limit: int = FLASH_ROUND_MAX_LIMIT,
    ) -> None:
        """
        Open the flash round for this team.

        @param max_score: Optional round4 maximum (0 to limit)
        @param limit: Largest round4 maximum an admin may set
        @raise ValidationError: If the maximum is out of range or below a
            score already recorded for round4
        """
        if max_score is not None:
            if max_score < 0 or max_score > limit:
                raise ValidationError(f"Max score must be between 0 and {limit}")
            recorded = [e.score for e in self.scores[Round.ROUND4].evaluations]
            if recorded and max_score < max(recorded):
                raise ValidationError(
                    f"Max score cannot be below the highest Flash Round score "
                    f"already recorded ({max(recorded)})"
                )
            self.scores[Round.ROUND4].max_score = max_score
        self.is_flash_round_selected = True
        self.updated_at = utcnow()

    def remove_from_flash_round(self) -> None:
        self.is_flash_round_selected = False
        self.scores[Round.ROUND4].reset(max_score=0)

    def set_tasks(self, round_: Round, tasks: List[Dict[str, Any]]) -> List[Task]:
        self.tasks[round_] = [Task.from_dict(t) for t in tasks]
        self.updated_at = utcnow()
        return self.tasks[round_]

    def publish_tasks(self, round_: Round) -> List[Task]:
        for task in self.tasks[round_]:
            task.visible = True
        self.updated_at = utcnow()
        return self.tasks[round_]

    def visible_tasks(self) -> Dict[Round, List[Task]]:
        return {r: [t for t in tasks if t.visible] for r, tasks in self.tasks.items()}

    def to_document(self) -> Dict[str, Any]:
        """
        Serialise the team to its stored/JSON form.

        @return: JSON-safe dictionary
        """
        return {
            "id": self.id,
            "team_name": self.team_name,
            "team_number": self.team_number,
            "domain": self.domain.value,
            "lead_id": self.lead_id,
            "members": [m.to_dict() for m in self.members],
            "is_flash_round_selected": self.is_flash_round_selected,
            "tasks": {r.value: [t.to_dict() for t in ts] for r, ts in self.tasks.items()},
            "scores": {r.value: s.to_dict() for r, s in self.scores.items()},
            "total_score": self._total_score,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Team":
        team = cls(
            team_name=data["team_name"],
            team_number=data["team_number"],
            domain=Domain(data["domain"]),
            lead_id=data.get("lead_id"),
            members=[Member(**m) for m in data.get("members", [])],
            team_id=data.get("id"),
        )
        team.is_flash_round_selected = bool(data.get("is_flash_round_selected"))

        for round_ in Round:
            team.tasks[round_] = [
                Task.from_dict(t) for t in data.get("tasks", {}).get(round_.value, [])
            ]
            stored = data.get("scores", {}).get(round_.value)
            if stored is not None:
                team._attach(round_, RoundScore.from_dict(stored))

        team._total_score = data.get("total_score", 0.0)
        team.created_at = parse_datetime(data.get("created_at")) or team.created_at
        team.updated_at = parse_datetime(data.get("updated_at")) or team.updated_at
        return team


@dataclass
class User:
    id: str
    email: str
    name: str
    role: Role
    domain: Optional[Domain] = None
    evaluator_type: Optional[EvaluatorType] = None
    team_id: Optional[int] = None
    password_hash: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "domain": self.domain.value if self.domain else None,
            "evaluator_type": self.evaluator_type.value if self.evaluator_type else None,
            "team_id": self.team_id,
        }


@dataclass
class Timer:
    """Event countdown; the end time is fixed when the timer is created."""

    start_time: datetime
    duration: int
    message: str
    event: str = "timer_started"
    is_active: bool = True
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(milliseconds=self.duration)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.end_time

    def remaining_ms(self, now: Optional[datetime] = None) -> int:
        remaining = (self.end_time - (now or utcnow())) / timedelta(milliseconds=1)
        return int(remaining) if remaining > 0 else 0

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event": self.event,
            "start_time": format_datetime(self.start_time),
            "end_time": format_datetime(self.end_time),
            "duration": self.duration,
            "remaining_time": self.remaining_ms(now),
            "message": self.message,
            "is_active": self.is_active,
        }


@dataclass
class GameScore:
    team_id: int
    team_name: str
    team_number: int
    score: int = 0
    high_score: int = 0
    games_played: int = 0
    last_played_at: Optional[datetime] = None

    def record_play(
        self,
        score: int,
        max_score: int,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Record one game result.

        @param score: Reported score (capped at max_score)
        @param max_score: Highest score accepted from a client
        @param now: Time of play (defaults to now)
        @raise ValidationError: If the score is negative
        """
        if score < 0:
            raise ValidationError("Score cannot be negative")
        score = min(score, max_score)

        self.score = score
        self.games_played += 1
        self.last_played_at = now or utcnow()
        if score > self.high_score:
            self.high_score = score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "team_number": self.team_number,
            "score": self.score,
            "high_score": self.high_score,
            "games_played": self.games_played,
            "last_played_at": format_datetime(self.last_played_at),
        }
