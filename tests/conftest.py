"""
Shared fixtures: a throwaway config, database, app and test client.
"""

import json

import pytest

from hackscore.auth import hash_password
from hackscore.config import HackathonConfig
from hackscore.models import Domain, EvaluatorType, Role, Team
from hackscore.scoreboard import HackathonSystem

ADMIN_EMAIL = "admin@test.local"
ADMIN_PASSWORD = "admin-pass"
USER_PASSWORD = "secret123"


@pytest.fixture
def config(tmp_path, monkeypatch):
    for env_var in HackathonConfig.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)

    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "event_name": "Test Hack",
                "auth": {
                    "admin_email": ADMIN_EMAIL,
                    "admin_password": ADMIN_PASSWORD,
                    "jwt_secret": "test-secret",
                },
            }
        )
    )
    return HackathonConfig(str(config_path))


@pytest.fixture
async def system(tmp_path, config):
    system = HackathonSystem(db_path=str(tmp_path / "test.db"), config=config)
    await system.init_db()
    return system


@pytest.fixture
def db(system):
    return system.db


@pytest.fixture
async def client(aiohttp_client, system):
    return await aiohttp_client(system.create_app())


@pytest.fixture
def make_user(db):
    async def factory(
        email,
        role=Role.EVALUATOR,
        domain=Domain.WEB_DEVELOPMENT,
        evaluator_type=EvaluatorType.STAFF,
        name=None,
    ):
        return await db.create_user(
            email=email,
            password_hash=hash_password(USER_PASSWORD),
            name=name or email.split("@")[0],
            role=role,
            domain=domain,
            evaluator_type=evaluator_type if role == Role.EVALUATOR else None,
        )

    return factory


@pytest.fixture
def make_team(db, config):
    async def factory(number, domain=Domain.WEB_DEVELOPMENT, lead_id=None, name=None):
        team = await db.create_team(
            Team(
                team_name=name or f"Team {number}",
                team_number=number,
                domain=domain,
                lead_id=lead_id,
                round_max_scores=config.round_max_scores(),
            )
        )
        if lead_id is not None:
            await db.link_team_lead(lead_id, team.id)
        return team

    return factory


@pytest.fixture
def headers_for(system):
    def factory(user_or_id):
        user_id = getattr(user_or_id, "id", user_or_id)
        return {"Authorization": f"Bearer {system.auth.create_token(user_id)}"}

    return factory
