"""
Hackathon Scoreboard - a scoring backend for hackathon-style events.

This package provides:
- Weighted per-round score aggregation (student 60%, staff mean 40%)
- Team, evaluator and team lead management over a JSON API
- Flash round selection and admin score overrides
- Leaderboard page and CSV export
- Event countdown timer and mini-game leaderboard
"""

from .aggregator import aggregate_round, rollup_total, round2
from .config import HackathonConfig
from .database import DatabaseManager
from .scoreboard import HackathonSystem

__version__ = "1.0.0"
__author__ = "Hackathon Scoreboard Contributors"

__all__ = [
    "aggregate_round",
    "rollup_total",
    "round2",
    "HackathonConfig",
    "DatabaseManager",
    "HackathonSystem",
]
