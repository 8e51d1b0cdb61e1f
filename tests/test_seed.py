from hackscore.auth import verify_password
from hackscore.models import Domain, EvaluatorType, Role, Round
from hackscore.seed import import_staff_evaluators, seed_demo, seed_teams

REGISTRATION_HEADER = "email,password,team,size,lead,m1,m2,m3,m4,m5,domain\n"


async def test_seed_teams(db, make_user, tmp_path):
    await make_user("taken@example.com", role=Role.TEAM_LEAD)
    csv_path = tmp_path / "teams.csv"
    csv_path.write_text(
        REGISTRATION_HEADER
        + "one@example.com,pass1234,Null Pointers,3,Ada,Bob,Cy,,,,IoT\n"
        + "\n"
        + "taken@example.com,pass1234,Dupes,2,Eve,Finn,,,,,ML\n"
        + "two@example.com,pass5678,Quants,2,Gus,Hal,,,,,Quantum computing.\n"
        + "three@example.com,pass0000,Mystery,1,Ivy,,,,,,Basket weaving\n"
    )

    added, skipped = await seed_teams(db, str(csv_path))

    assert (added, skipped) == (3, 1)

    teams = await db.list_teams()
    assert [(t.team_number, t.team_name, t.domain) for t in teams] == [
        (1, "Null Pointers", Domain.IOT_SYSTEMS),
        (2, "Quants", Domain.QUANTUM_COMPUTING),
        (3, "Mystery", Domain.WEB_DEVELOPMENT),
    ]
    assert [m.name for m in teams[0].members] == ["Bob", "Cy"]

    lead = await db.get_user_by_email("one@example.com")
    assert lead.role == Role.TEAM_LEAD
    assert lead.name == "Ada"
    assert lead.team_id == teams[0].id
    assert verify_password("pass1234", lead.password_hash)


async def test_seed_teams_continues_numbering(db, make_team, tmp_path):
    await make_team(4)
    csv_path = tmp_path / "teams.csv"
    csv_path.write_text(
        REGISTRATION_HEADER + "new@example.com,pass1234,Late Entry,1,Jo,,,,,,Web Dev\n"
    )

    await seed_teams(db, str(csv_path))

    assert (await db.get_team_by_number(5)).team_name == "Late Entry"


async def test_import_staff_evaluators_replaces_staff(db, make_user, tmp_path):
    await make_user("old.staff@example.com")
    student = await make_user("student@example.com", evaluator_type=EvaluatorType.STUDENT)
    csv_path = tmp_path / "faculty.csv"
    csv_path.write_text(
        "name,email,password,domain\n"
        "Dr. Rao,rao@example.com,faculty1,Cyber Security\n"
        "incomplete,row\n"
        "Dr. Kim,KIM@example.com,faculty2,agentic ai\n"
    )

    created = await import_staff_evaluators(db, str(csv_path))

    assert created == 2
    assert await db.get_user_by_email("old.staff@example.com") is None
    assert await db.get_user(student.id) is not None

    kim = await db.get_user_by_email("kim@example.com")
    assert kim.evaluator_type == EvaluatorType.STAFF
    assert kim.domain == Domain.AGENTIC_AI


async def test_seed_demo(db):
    await seed_demo(db, team_count=4)

    teams = await db.list_teams()
    assert len(teams) == 4
    assert [t.is_flash_round_selected for t in teams] == [True, True, False, False]
    assert teams[0].scores[Round.ROUND4].max_score == 20
    assert len(teams[0].visible_tasks()[Round.ROUND1]) == 3
    assert teams[0].visible_tasks()[Round.ROUND4] == []

    lead = await db.get_user_by_email("team1@hackathon.local")
    assert lead.team_id == teams[0].id

    students = [
        await db.get_user_by_email(f"student.eval.{i}@hackathon.local")
        for i in range(1, len(Domain) + 1)
    ]
    assert {s.domain for s in students} == set(Domain)
