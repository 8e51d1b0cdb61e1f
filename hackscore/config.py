"""
Configuration management for the hackathon scoreboard.
Supports both JSON file configuration and environment variable overrides.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List

from .models import FLASH_ROUND_MAX_LIMIT, Round

logger = logging.getLogger(__name__)


class HackathonConfig:
    """Configuration management for the hackathon scoreboard."""

    DEFAULT_CONFIG = {
        "event_name": "Hackathon Scoreboard",
        "teams": {
            "max_team_number": 100,
        },
        "rounds": {
            "round1_max_score": 30,
            "round2_max_score": 20,
            "round3_max_score": 50,
            "flash_round_max_limit": FLASH_ROUND_MAX_LIMIT,
        },
        "auth": {
            "admin_email": "admin@hackathon.local",
            "admin_password": "admin123",
            "jwt_secret": "change-me",
            "token_expiry_days": 7,
        },
        "timer": {
            "duration_hours": 24,
            "message": "The hackathon timer has been ignited!",
        },
        "game": {
            "max_score": 50000,
            "leaderboard_limit": 50,
        },
        "server": {
            "allowed_origins": ["http://localhost:5173", "http://localhost:5174"],
            "log_level": "INFO",
        },
    }

    ENV_MAPPINGS = {
        "EVENT_NAME": ("event_name",),
        "MAX_TEAM_NUMBER": ("teams", "max_team_number"),
        "ROUND1_MAX_SCORE": ("rounds", "round1_max_score"),
        "ROUND2_MAX_SCORE": ("rounds", "round2_max_score"),
        "ROUND3_MAX_SCORE": ("rounds", "round3_max_score"),
        "FLASH_ROUND_MAX_LIMIT": ("rounds", "flash_round_max_limit"),
        "ADMIN_EMAIL": ("auth", "admin_email"),
        "ADMIN_PASSWORD": ("auth", "admin_password"),
        "JWT_SECRET": ("auth", "jwt_secret"),
        "TOKEN_EXPIRY_DAYS": ("auth", "token_expiry_days"),
        "TIMER_DURATION_HOURS": ("timer", "duration_hours"),
        "TIMER_MESSAGE": ("timer", "message"),
        "GAME_MAX_SCORE": ("game", "max_score"),
        "GAME_LEADERBOARD_LIMIT": ("game", "leaderboard_limit"),
        "ALLOWED_ORIGINS": ("server", "allowed_origins"),
        "LOG_LEVEL": ("server", "log_level"),
    }

    # Keys that must stay strings even when the value looks numeric
    STRING_KEYS = {"ADMIN_PASSWORD", "JWT_SECRET", "EVENT_NAME", "TIMER_MESSAGE"}

    def __init__(
        self,
        config_path: str = "hackathon_config.json",
    ) -> None:
        """Initialize configuration from file, environment variables, or defaults."""
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from JSON file or create default.

        @return: Dictionary containing the loaded configuration
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded_config = json.load(f)

                # Merge with defaults to ensure all keys exist
                config = copy.deepcopy(self.DEFAULT_CONFIG)
                self._deep_merge(config, loaded_config)
                return config

            except (json.JSONDecodeError, IOError) as e:
                logger.error("Error loading config from %s: %s", self.config_path, e)
                logger.warning("Using default configuration")
                return copy.deepcopy(self.DEFAULT_CONFIG)
        else:
            self._create_default_config()
            return copy.deepcopy(self.DEFAULT_CONFIG)

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        """
        Recursively merge dictionaries.

        @param base_dict: Base dictionary to merge into
        @param update_dict: Dictionary with updates to merge
        """
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        ALLOWED_ORIGINS takes a comma-separated list.
        """
        for env_var, config_path in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue

            if env_var == "ALLOWED_ORIGINS":
                value: Any = [o.strip() for o in env_value.split(",") if o.strip()]
            elif env_var in self.STRING_KEYS:
                value = env_value
            else:
                value = self._convert_env_value(env_value)
            self._set_nested_config(config_path, value)

    def _convert_env_value(self, value: str) -> Any:
        """
        Convert environment variable string to appropriate type.

        @param value: String value from environment variable
        @return: Converted value (bool, int, or string)
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def _set_nested_config(self, path: tuple, value: Any) -> None:
        """
        Set a nested configuration value using a path tuple.

        @param path: Tuple representing the nested path (e.g., ("auth", "jwt_secret"))
        @param value: Value to set
        """
        current = self.config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """
        Create a default configuration file.

        Writes the default configuration to the configured file path.
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            logger.info("Created default configuration file: %s", self.config_path)
        except IOError as e:
            logger.warning("Could not create config file %s: %s", self.config_path, e)

    def _validate_positive_int(self, section: str, key: str) -> None:
        value = self.config[section][key]
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            default = self.DEFAULT_CONFIG[section][key]
            logger.warning("Invalid %s.%s, using %s", section, key, default)
            self.config[section][key] = default

    def _validate_config(self) -> None:
        """
        Validate configuration values.

        Checks configuration values for validity and sets defaults for invalid values.
        """
        self._validate_positive_int("teams", "max_team_number")
        for round_ in (Round.ROUND1, Round.ROUND2, Round.ROUND3):
            self._validate_positive_int("rounds", f"{round_.value}_max_score")
        self._validate_positive_int("rounds", "flash_round_max_limit")
        self._validate_positive_int("auth", "token_expiry_days")
        self._validate_positive_int("timer", "duration_hours")
        self._validate_positive_int("game", "max_score")
        self._validate_positive_int("game", "leaderboard_limit")

        if self.config["auth"]["jwt_secret"] == self.DEFAULT_CONFIG["auth"]["jwt_secret"]:
            logger.warning("JWT_SECRET is not set, using an insecure default secret")

        level = str(self.config["server"]["log_level"]).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning("Invalid log_level, using 'INFO'")
            level = "INFO"
        self.config["server"]["log_level"] = level

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Get nested configuration value.

        @param keys: Variable arguments representing nested keys to traverse
        @return: Configuration value at the specified path, None if not found
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def round_max_scores(self) -> Dict[Round, int]:
        """
        Get the configured maximum score of every round for new teams.

        The flash round always starts at 0 until a team is selected for it.

        @return: Mapping of round to maximum score
        """
        return {
            Round.ROUND1: self.get("rounds", "round1_max_score"),
            Round.ROUND2: self.get("rounds", "round2_max_score"),
            Round.ROUND3: self.get("rounds", "round3_max_score"),
            Round.ROUND4: 0,
        }

    def allowed_origins(self) -> List[str]:
        return list(self.get("server", "allowed_origins") or [])

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        @return: True if saved successfully, False on error
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.config, f, indent=2)
            return True
        except IOError as e:
            logger.error("Could not save config file %s: %s", self.config_path, e)
            return False
