"""Configuration Management with Pydantic.

Configuration is read from a YAML (or JSON) file, validated by Pydantic models
and optionally overridden by ``CRITPATH_*`` environment variables.
"""

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator

logger = structlog.get_logger(__name__)


class StorageConfig(BaseModel):
    """Storage collaborator settings.

    Attributes:
        path: JSON document holding tasks and dependencies. When unset the
            scheduler runs against a transient in-memory store.
    """

    path: Path | None = Field(
        default=None,
        description="Path to the JSON task store",
    )


class ScheduleConfig(BaseModel):
    """Rescheduling settings.

    Attributes:
        timezone: IANA zone whose midnight is used as the project start date
    """

    timezone: str = Field(
        default="UTC",
        description="Timezone used to compute the project start date",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names unknown to the system zone database."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            msg = f"Unknown timezone: {v}"
            raise ValueError(msg) from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    model_config = {"str_strip_whitespace": True}


class CritpathConfig(BaseModel):
    """Top-level scheduler configuration.

    Attributes:
        storage: Storage collaborator configuration
        schedule: Rescheduling configuration
        logging_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render logs as JSON instead of the console format
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    logging_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    json_logs: bool = Field(
        default=True,
        description="Emit JSON log lines",
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "CritpathConfig":
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            Parsed and validated CritpathConfig instance

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If configuration is invalid or the YAML cannot be parsed
        """
        config_path = Path(path)

        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise FileNotFoundError(msg)

        logger.info("loading_configuration", path=str(config_path))

        try:
            with config_path.open() as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.exception("yaml_parse_error", error=str(e), path=str(config_path))
            msg = f"Invalid YAML in configuration file: {e}"
            raise ValueError(msg) from e

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            msg = "Configuration file must contain a mapping"
            raise ValueError(msg)

        config = cls(**cls._apply_env_overrides(config_data))
        logger.info(
            "configuration_loaded",
            storage_path=str(config.storage.path) if config.storage.path else None,
            timezone=config.schedule.timezone,
            logging_level=config.logging_level,
        )
        return config

    @classmethod
    def from_env(cls) -> "CritpathConfig":
        """Build configuration from defaults and environment variables only."""
        return cls(**cls._apply_env_overrides({}))

    @classmethod
    def _apply_env_overrides(cls, config_data: dict) -> dict:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern ``CRITPATH_<SECTION>_<KEY>``.

        Args:
            config_data: Base configuration dictionary from file

        Returns:
            Configuration dictionary with environment overrides applied
        """
        env_overrides = {
            ("storage", "path"): "CRITPATH_STORAGE_PATH",
            ("schedule", "timezone"): "CRITPATH_SCHEDULE_TIMEZONE",
            ("logging_level",): "CRITPATH_LOGGING_LEVEL",
            ("json_logs",): "CRITPATH_JSON_LOGS",
        }

        for path, env_var in env_overrides.items():
            value = os.environ.get(env_var)
            if value is None:
                continue

            current = config_data
            for key in path[:-1]:
                if not isinstance(current.get(key), dict):
                    current[key] = {}
                current = current[key]

            if env_var == "CRITPATH_JSON_LOGS":
                current[path[-1]] = value.lower() in ("true", "1", "yes")
            else:
                current[path[-1]] = value

            logger.debug(
                "env_override_applied",
                env_var=env_var,
                config_path=".".join(path),
            )

        return config_data


DEFAULT_CONFIG_NAMES = ("critpath.yaml", "critpath.yml", "critpath.json")


def load_config(config_path: str | Path | None = None) -> CritpathConfig:
    """Load configuration from file.

    Args:
        config_path: Path to configuration file. If None, looks for
            critpath.yaml, critpath.yml or critpath.json in the current
            directory and falls back to defaults plus environment.

    Raises:
        FileNotFoundError: If an explicit config file is missing
        ValueError: If config file is invalid
    """
    if config_path is None:
        for default_name in DEFAULT_CONFIG_NAMES:
            default_path = Path(default_name)
            if default_path.exists():
                config_path = default_path
                break
        else:
            logger.debug("no_configuration_file_found_using_defaults")
            return CritpathConfig.from_env()

    return CritpathConfig.from_yaml(config_path)


__all__ = [
    "CritpathConfig",
    "ScheduleConfig",
    "StorageConfig",
    "load_config",
]
