import asyncio
from datetime import timedelta

import pytest

from hackscore.errors import ConflictError, DuplicateEvaluationError, NotFoundError
from hackscore.models import (
    Domain,
    Evaluation,
    EvaluatorType,
    GameScore,
    Role,
    Round,
    Timer,
    utcnow,
)


def evaluation(evaluator_id, score, evaluator_type=EvaluatorType.STAFF):
    return Evaluation(evaluator_id, evaluator_id, evaluator_type, score)


async def test_team_survives_reload(db, make_team):
    team = await make_team(7, Domain.IOT_SYSTEMS)

    await db.update_team(
        team.id,
        lambda t: t.submit_evaluation(
            Round.ROUND1, evaluation("s", 20, EvaluatorType.STUDENT)
        ),
    )
    await db.update_team(
        team.id, lambda t: t.submit_evaluation(Round.ROUND1, evaluation("a", 25))
    )

    stored = await db.get_team(team.id)
    assert stored.team_number == 7
    assert stored.domain == Domain.IOT_SYSTEMS
    assert stored.scores[Round.ROUND1].final_score == 22
    assert stored.total_score == 22
    assert len(stored.scores[Round.ROUND1].evaluations) == 2

    assert (await db.get_team_by_number(7)).id == team.id


async def test_failed_mutation_writes_nothing(db, make_team):
    team = await make_team(1)
    await db.update_team(
        team.id, lambda t: t.submit_evaluation(Round.ROUND1, evaluation("a", 10))
    )

    with pytest.raises(DuplicateEvaluationError):
        await db.update_team(
            team.id, lambda t: t.submit_evaluation(Round.ROUND1, evaluation("a", 30))
        )

    stored = await db.get_team(team.id)
    assert stored.scores[Round.ROUND1].final_score == 10
    assert len(stored.scores[Round.ROUND1].evaluations) == 1


async def test_update_missing_team(db):
    with pytest.raises(NotFoundError):
        await db.update_team(999, lambda t: None)


async def test_duplicate_team_number(db, make_team):
    await make_team(3)
    with pytest.raises(ConflictError):
        await make_team(3)


async def test_concurrent_submissions_are_all_kept(db, make_team):
    team = await make_team(1)

    async def submit(evaluator_id, score):
        await db.update_team(
            team.id,
            lambda t: t.submit_evaluation(Round.ROUND3, evaluation(evaluator_id, score)),
        )

    await asyncio.gather(*(submit(f"staff-{i}", 10 + i) for i in range(6)))

    stored = await db.get_team(team.id)
    scores = sorted(e.score for e in stored.scores[Round.ROUND3].evaluations)
    assert scores == [10, 11, 12, 13, 14, 15]
    assert stored.scores[Round.ROUND3].final_score == 12.5
    assert stored.total_score == 12.5


async def test_leaderboard_orders_by_total_then_creation(db, make_team):
    first = await make_team(5, name="First")
    second = await make_team(2, name="Second")
    third = await make_team(9, name="Third")

    await db.update_team(
        third.id, lambda t: t.submit_evaluation(Round.ROUND1, evaluation("a", 20))
    )
    await db.update_team(
        first.id, lambda t: t.submit_evaluation(Round.ROUND2, evaluation("a", 10))
    )
    await db.update_team(
        second.id, lambda t: t.submit_evaluation(Round.ROUND1, evaluation("a", 10))
    )

    ranking = await db.leaderboard()

    assert [t.team_name for t in ranking] == ["Third", "First", "Second"]


async def test_leaderboard_reflects_updates(db, make_team):
    team = await make_team(1)
    assert (await db.leaderboard())[0].total_score == 0

    await db.update_team(
        team.id, lambda t: t.submit_evaluation(Round.ROUND1, evaluation("a", 10))
    )

    assert (await db.leaderboard())[0].total_score == 10


async def test_list_teams_filters(db, make_team):
    await make_team(2, Domain.MACHINE_LEARNING)
    flash = await make_team(1, Domain.MACHINE_LEARNING)
    await make_team(3, Domain.CYBER_SECURITY)
    await db.update_team(flash.id, lambda t: t.select_for_flash_round(10))

    ml_teams = await db.list_teams(domain=Domain.MACHINE_LEARNING)
    flash_teams = await db.list_teams(flash_only=True)

    assert [t.team_number for t in ml_teams] == [1, 2]
    assert [t.id for t in flash_teams] == [flash.id]
    assert await db.next_team_number() == 4


async def test_user_email_is_unique_and_case_insensitive(db, make_user):
    user = await make_user("Judge@Example.com")

    assert user.email == "judge@example.com"
    assert (await db.get_user_by_email("JUDGE@example.com")).id == user.id
    with pytest.raises(ConflictError):
        await make_user("judge@example.com")


async def test_delete_users_by_evaluator_type(db, make_user):
    await make_user("staff@example.com")
    student = await make_user("student@example.com", evaluator_type=EvaluatorType.STUDENT)
    lead = await make_user("lead@example.com", role=Role.TEAM_LEAD)

    assert await db.delete_users(Role.EVALUATOR, EvaluatorType.STAFF) == 1
    assert await db.get_user_by_email("staff@example.com") is None
    assert await db.get_user(student.id) is not None
    assert await db.get_user(lead.id) is not None


async def test_team_lead_link(db, make_user, make_team):
    lead = await make_user("lead@example.com", role=Role.TEAM_LEAD)
    team = await make_team(4, lead_id=lead.id)

    assert (await db.get_user(lead.id)).team_id == team.id
    assert (await db.get_team_by_lead(lead.id)).id == team.id


async def test_starting_timer_replaces_active_one(db):
    now = utcnow()
    old = await db.start_timer(Timer(start_time=now, duration=1000, message="old"))
    new = await db.start_timer(
        Timer(start_time=now, duration=60000, message="new", created_at=now + timedelta(seconds=1))
    )

    active = await db.active_timer()
    assert active.id == new.id
    assert active.message == "new"

    await db.deactivate_timer(new.id)
    assert await db.active_timer() is None
    assert [t.id for t in await db.timer_history()] == [new.id, old.id]


async def test_game_leaderboard(db):
    for team_id, high, last in [(1, 300, 10), (2, 500, 20), (3, 300, 50)]:
        await db.save_game_score(
            GameScore(team_id, f"T{team_id}", team_id, score=last, high_score=high, games_played=1)
        )

    ranking = await db.game_leaderboard(limit=2)

    assert [g.team_id for g in ranking] == [2, 3]

    game = await db.get_game_score(1)
    game.record_play(900, max_score=50000)
    await db.save_game_score(game)
    assert (await db.get_game_score(1)).high_score == 900

    assert await db.delete_game_score(1)
    assert not await db.delete_game_score(1)
