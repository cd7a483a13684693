"""Configuration management for commandwire.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a Config object. Property getters provide safe access with
defaults for every setting the dispatch core reads: prefixes, owners,
the bot-wide block-list, response template overrides, command specs
and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .exceptions import ConfigurationError
from .models import CommandSpec
from .responses import CATALOG_KEYS

logger = structlog.get_logger("commandwire.bot")

DEFAULT_PREFIXES = ["!"]


class Config:
    """Central configuration manager for commandwire.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"{filename} must contain a mapping",
                    setting_name=filename,
                )
            return data
        return {}

    @property
    def token(self) -> str:
        """Bot token. Env var BOT_TOKEN takes precedence."""
        return os.environ.get("BOT_TOKEN") or self.settings.get("token", "")

    @property
    def prefixes(self) -> List[str]:
        """Command prefixes in match order (default ``["!"]``)."""
        prefixes = self.settings.get("prefixes", DEFAULT_PREFIXES)
        if isinstance(prefixes, str):
            return [prefixes]
        if not isinstance(prefixes, list):
            logger.error("prefixes_invalid_type", type=type(prefixes).__name__)
            return list(DEFAULT_PREFIXES)
        return [str(p) for p in prefixes if p] or list(DEFAULT_PREFIXES)

    @property
    def owners(self) -> List[str]:
        """User ids allowed to run owners-only commands."""
        owners = self.settings.get("owners", [])
        if not isinstance(owners, list):
            logger.error("owners_invalid_type", type=type(owners).__name__)
            return []
        return [str(o) for o in owners]

    @property
    def blocked_users(self) -> List[str]:
        """Initial bot-wide block-list."""
        blocked = self.settings.get("blocked_users", self.settings.get("blockedUsers", []))
        if not isinstance(blocked, list):
            logger.error("blocked_users_invalid_type", type=type(blocked).__name__)
            return []
        return [str(u) for u in blocked]

    @property
    def responses(self) -> Dict[str, List[str]]:
        """Response template overrides keyed by catalog key."""
        responses = self.settings.get("responses", {})
        if not isinstance(responses, dict):
            logger.error("responses_invalid_type", type=type(responses).__name__)
            return {}
        return responses

    @property
    def commands(self) -> List[CommandSpec]:
        """Command specs declared under ``commands:`` for a loader to bind.

        Raises:
            ConfigurationError: If an entry is not a valid command spec.
        """
        entries = self.settings.get("commands", [])
        specs = []
        for entry in entries or []:
            try:
                specs.append(CommandSpec.model_validate(entry))
            except ValidationError as e:
                raise ConfigurationError(
                    "Invalid command spec",
                    setting_name="commands",
                    entry=str(entry)[:100],
                    error=str(e),
                ) from e
        return specs

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    def _logging_settings(self) -> dict:
        """The ``logging:`` section. A bare boolean is the enabled flag."""
        log_config = self.settings.get("logging", {})
        if log_config is None:
            return {}
        if isinstance(log_config, bool):
            return {"enabled": log_config}
        if not isinstance(log_config, dict):
            logger.error("logging_invalid_type", type=type(log_config).__name__)
            return {}
        return log_config

    @property
    def logging_enabled(self) -> bool:
        """Console logging of dispatch activity (default True).

        When False the console only shows warnings and errors.
        """
        log_config = self._logging_settings()
        return log_config.get("enabled", True)

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self._logging_settings()
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"dispatch": "DEBUG"}."""
        log_config = self._logging_settings()
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self._logging_settings()
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self._logging_settings()
        return log_config.get("backup_count", 5)

    def validate(self) -> bool:
        """Validate settings at startup.

        Logs problems but does not raise; the bot starts with
        defaults where a setting is unusable.

        Returns:
            True if no problems were found.
        """
        ok = True
        prefixes = self.settings.get("prefixes")
        if prefixes is not None and not isinstance(prefixes, (list, str)):
            logger.error("config_invalid_value", key="prefixes", value=prefixes)
            ok = False
        elif isinstance(prefixes, list) and not all(prefixes):
            logger.warning("config_empty_prefix", key="prefixes")
            ok = False

        log_config = self.settings.get("logging")
        if log_config is not None and not isinstance(log_config, (bool, dict)):
            logger.error("config_invalid_value", key="logging", value=log_config)
            ok = False

        for key in self.responses:
            if key not in CATALOG_KEYS:
                logger.warning("config_unknown_response_key", key=key)
                ok = False

        if not self.token:
            logger.warning("no_bot_token", msg="Platform client will not be able to log in")
        return ok


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
