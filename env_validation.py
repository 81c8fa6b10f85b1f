"""Environment variable validation and logging setup."""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LOGGER_NAMES = ("dashboards", "engines", "schemas", "campus_config")
CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigurationError(Exception):
    """Raised when configuration values are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate the campus environment variables.

    Raises ConfigurationError if validation fails.
    """
    defaults = {
        "CAMPUS_LOG_LEVEL": os.getenv("CAMPUS_LOG_LEVEL") or "INFO",
    }

    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars = {
        "CAMPUS_CONFIG_PATH": "JSON or YAML file with course, department and grading tables",
    }

    level = os.environ["CAMPUS_LOG_LEVEL"].upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"Invalid log level for CAMPUS_LOG_LEVEL: {level}")

    config_path = os.getenv("CAMPUS_CONFIG_PATH")
    if config_path:
        path = Path(config_path)
        if path.suffix.lower() not in CONFIG_SUFFIXES:
            raise ConfigurationError(f"Unsupported config format for CAMPUS_CONFIG_PATH: {config_path}")
        if not path.is_file():
            if get_env_bool("CAMPUS_STRICT_CONFIG"):
                raise ConfigurationError(f"CAMPUS_CONFIG_PATH does not exist: {config_path}")
            logger.warning("CAMPUS_CONFIG_PATH %s does not exist; built-in tables will be used", config_path)

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning(f"Optional environment variable not set: {var} ({description})")


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach one stream handler to the campus module loggers."""
    resolved = (level or os.getenv("CAMPUS_LOG_LEVEL") or "INFO").upper()
    if resolved not in LOG_LEVELS:
        resolved = "INFO"
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    for name in LOGGER_NAMES:
        module_logger = logging.getLogger(name)
        if not module_logger.handlers:
            module_logger.addHandler(handler)
        module_logger.setLevel(resolved)
        module_logger.propagate = False
    return logging.getLogger(LOGGER_NAMES[0])
