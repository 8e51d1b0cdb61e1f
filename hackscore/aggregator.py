"""
Weighted score aggregation for hackathon rounds.

A round's final score combines one student evaluation (weighted 60%) with the
mean of the staff evaluations (weighted 40%). When no student evaluation
exists the final score is the plain mean of every evaluation.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence, Tuple

STUDENT_WEIGHT = 0.6
STAFF_WEIGHT = 0.4


def round2(value: float) -> float:
    """
    Round a score to 2 decimal places, halves rounding up.

    @param value: Raw score
    @return: Score rounded to 2 decimal places
    """
    return math.floor(value * 100 + 0.5) / 100


def aggregate_round(
    evaluations: Sequence,
    now: Optional[datetime] = None,
) -> Tuple[Optional[float], Optional[datetime]]:
    """
    Compute the final score of one round from its evaluations.

    Only the first student evaluation (in submission order) is counted.
    The staff share is not redistributed when a round has a student
    evaluation but no staff evaluations.

    @param evaluations: Evaluations in submission order; each needs
        ``evaluator_type`` and ``score``
    @param now: Calculation timestamp (defaults to the current UTC time)
    @return: Tuple of (final score, calculated at), both None when empty
    """
    if not evaluations:
        return None, None

    student_scores = [e.score for e in evaluations if e.evaluator_type == "student"]
    staff_scores = [e.score for e in evaluations if e.evaluator_type == "staff"]

    if student_scores:
        total = student_scores[0] * STUDENT_WEIGHT
        if staff_scores:
            total += (sum(staff_scores) / len(staff_scores)) * STAFF_WEIGHT
    else:
        # No weighting without a student evaluator
        total = sum(e.score for e in evaluations) / len(evaluations)

    if now is None:
        now = datetime.now(timezone.utc)

    return round2(total), now


def rollup_total(final_scores: Iterable[Optional[float]]) -> float:
    """
    Sum per-round final scores into a team total.

    @param final_scores: Final score of each round, None for unscored rounds
    @return: Total rounded to 2 decimal places
    """
    return round2(sum(score for score in final_scores if score is not None))
