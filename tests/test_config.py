import json

import pytest

from hackscore.config import HackathonConfig
from hackscore.models import Round


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_var in HackathonConfig.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)


def test_missing_file_creates_defaults(tmp_path):
    path = tmp_path / "hackathon_config.json"

    config = HackathonConfig(str(path))

    assert path.exists()
    assert json.loads(path.read_text())["teams"]["max_team_number"] == 100
    assert config.get("rounds", "round1_max_score") == 30
    assert config.get("server", "log_level") == "INFO"


def test_file_values_merge_with_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"rounds": {"round3_max_score": 40}}))

    config = HackathonConfig(str(path))

    assert config.round_max_scores() == {
        Round.ROUND1: 30,
        Round.ROUND2: 20,
        Round.ROUND3: 40,
        Round.ROUND4: 0,
    }
    assert config.get("game", "max_score") == 50000


def test_invalid_json_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    config = HackathonConfig(str(path))

    assert config.get("event_name") == "Hackathon Scoreboard"


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"teams": {"max_team_number": 50}}))
    monkeypatch.setenv("MAX_TEAM_NUMBER", "80")
    monkeypatch.setenv("JWT_SECRET", "12345")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = HackathonConfig(str(path))

    assert config.get("teams", "max_team_number") == 80
    assert config.get("auth", "jwt_secret") == "12345"
    assert config.allowed_origins() == ["https://a.example", "https://b.example"]
    assert config.get("server", "log_level") == "DEBUG"


def test_invalid_values_are_replaced(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "rounds": {"round1_max_score": -5, "round2_max_score": "lots"},
                "game": {"leaderboard_limit": True},
                "server": {"log_level": "chatty"},
            }
        )
    )

    config = HackathonConfig(str(path))

    assert config.get("rounds", "round1_max_score") == 30
    assert config.get("rounds", "round2_max_score") == 20
    assert config.get("game", "leaderboard_limit") == 50
    assert config.get("server", "log_level") == "INFO"


def test_get_unknown_key_returns_none(tmp_path):
    config = HackathonConfig(str(tmp_path / "config.json"))
    assert config.get("auth", "nope") is None
    assert config.get("event_name", "deeper") is None


def test_save_config(tmp_path):
    path = tmp_path / "config.json"
    config = HackathonConfig(str(path))
    config.config["event_name"] = "Spring Hack"

    assert config.save_config()
    assert json.loads(path.read_text())["event_name"] == "Spring Hack"
