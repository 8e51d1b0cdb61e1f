"""
Seeding helpers: registration CSV import, staff evaluator import, and demo data.
"""

import csv
import logging
from pathlib import Path
from typing import Any, List, Tuple

from .auth import hash_password
from .errors import ValidationError
from .models import Domain, EvaluatorType, Member, Role, Round, Team

logger = logging.getLogger(__name__)

MAX_MEMBERS = 5


def _read_rows(csv_path: str) -> List[List[str]]:
    """
    Read a CSV file, skipping the header row and blank lines.

    @param csv_path: Path to the CSV file
    @return: List of rows with whitespace-stripped cells
    """
    with open(Path(csv_path), newline="", encoding="utf-8") as f:
        rows = [[cell.strip() for cell in row] for row in csv.reader(f)]
    return [row for row in rows[1:] if any(row)]


def _domain_or_default(text: str) -> Domain:
    domain = Domain.match(text)
    if domain is None:
        logger.warning("Unknown domain %r, using %s", text, Domain.WEB_DEVELOPMENT.value)
        return Domain.WEB_DEVELOPMENT
    return domain


async def seed_teams(db: Any, csv_path: str) -> Tuple[int, int]:
    """
    Create teams and team lead accounts from a registration CSV.

    Columns: email, password, team name, team size, lead name, member 1..5,
    domain. Rows whose lead email is already registered are skipped. Team
    numbers continue from the highest existing one.

    @param db: DatabaseManager instance
    @param csv_path: Path to the registration CSV
    @return: Tuple of (teams added, rows skipped)
    """
    max_number = db.config.get("teams", "max_team_number")
    team_number = await db.next_team_number()
    added = 0
    skipped = 0

    for row in _read_rows(csv_path):
        row = row + [""] * (11 - len(row))
        email, password, team_name, _, lead_name = row[:5]
        member_names = row[5:5 + MAX_MEMBERS]
        domain_text = row[10]

        if not email or not password or not team_name:
            continue

        if await db.get_user_by_email(email) is not None:
            logger.warning("User %s already exists, skipping team creation", email)
            skipped += 1
            continue

        if team_number > max_number:
            raise ValidationError(f"Team number must be between 1 and {max_number}")

        lead = await db.create_user(
            email=email,
            password_hash=hash_password(password),
            name=lead_name or team_name,
            role=Role.TEAM_LEAD,
            domain=_domain_or_default(domain_text),
        )
        team = await db.create_team(
            Team(
                team_name=team_name,
                team_number=team_number,
                domain=lead.domain,
                lead_id=lead.id,
                members=[Member(name=m) for m in member_names if m],
                round_max_scores=db.config.round_max_scores(),
            )
        )
        await db.link_team_lead(lead.id, team.id)

        logger.info("Seeded team %d: %s (%s)", team.team_number, team.team_name, team.domain.value)
        team_number += 1
        added += 1

    return added, skipped


async def import_staff_evaluators(db: Any, csv_path: str) -> int:
    """
    Replace all staff evaluators with the ones listed in a CSV.

    Columns: name, email, password, domain.

    @param db: DatabaseManager instance
    @param csv_path: Path to the evaluator CSV
    @return: Number of evaluators created
    """
    removed = await db.delete_users(Role.EVALUATOR, EvaluatorType.STAFF)
    logger.info("Cleared %d existing staff evaluators", removed)

    created = 0
    for row in _read_rows(csv_path):
        if len(row) < 4:
            logger.warning("Skipping malformed evaluator row: %s", row)
            continue
        name, email, password, domain_text = row[:4]

        await db.create_user(
            email=email,
            password_hash=hash_password(password),
            name=name,
            role=Role.EVALUATOR,
            domain=_domain_or_default(domain_text),
            evaluator_type=EvaluatorType.STAFF,
        )
        created += 1

    logger.info("Created %d staff evaluators", created)
    return created


DEMO_TASKS = {
    Round.ROUND1: [
        ("Project Initialization", "Set up the project repository and initialize the codebase."),
        ("Requirement Analysis", "Document the core requirements and features."),
        ("Database Schema Design", "Create the initial ER diagram and schema."),
    ],
    Round.ROUND2: [
        ("API Implementation", "Implement the core API endpoints."),
        ("Frontend Prototype", "Build the initial UI prototype."),
    ],
    Round.ROUND3: [
        ("Integration Testing", "Verify that all components work together."),
        ("Performance Optimization", "Optimize the application for speed and scale."),
        ("Final Presentation Prep", "Prepare slides and demo video."),
    ],
    Round.ROUND4: [
        ("Surprise Challenge", "Solve the flash round algorithmic challenge."),
    ],
}


async def seed_demo(db: Any, team_count: int = 10) -> None:
    """
    Populate an empty database with demo evaluators and teams.

    Each domain gets one student and two staff evaluators. Teams 1 and 2 are
    selected for the flash round with a maximum of 20.

    @param db: DatabaseManager instance
    @param team_count: Number of demo teams
    """
    for i, domain in enumerate(Domain, 1):
        await db.create_user(
            email=f"student.eval.{i}@hackathon.local",
            password_hash=hash_password("eval123"),
            name=f"Student Evaluator {i}",
            role=Role.EVALUATOR,
            domain=domain,
            evaluator_type=EvaluatorType.STUDENT,
        )
        for n in (i * 2 - 1, i * 2):
            await db.create_user(
                email=f"evaluator.{n}@hackathon.local",
                password_hash=hash_password("eval123"),
                name=f"Evaluator {n}",
                role=Role.EVALUATOR,
                domain=domain,
                evaluator_type=EvaluatorType.STAFF,
            )

    domains = list(Domain)
    for i in range(1, team_count + 1):
        lead = await db.create_user(
            email=f"team{i}@hackathon.local",
            password_hash=hash_password("team123"),
            name=f"Team Lead {i}",
            role=Role.TEAM_LEAD,
        )
        team = Team(
            team_name=f"Team {chr(64 + i)}",
            team_number=i,
            domain=domains[(i - 1) % len(domains)],
            lead_id=lead.id,
            members=[
                Member(name=f"Member {m} of Team {i}", email=f"member{m}.team{i}@example.com")
                for m in range(1, MAX_MEMBERS + 1)
            ],
            round_max_scores=db.config.round_max_scores(),
        )
        for round_, tasks in DEMO_TASKS.items():
            team.set_tasks(
                round_,
                [
                    {"title": t, "description": d, "visible": round_ != Round.ROUND4}
                    for t, d in tasks
                ],
            )
        if i <= 2:
            team.select_for_flash_round(20)

        team = await db.create_team(team)
        await db.link_team_lead(lead.id, team.id)

    logger.info(
        "Seeded %d evaluators and %d demo teams", len(domains) * 3, team_count
    )
