"""Static campus tables injected into the projector and dashboards.

The course -> majors table, department aliases and the passing-grade ceiling
used to be copied into several dashboard sections.  They now live in one
:class:`CampusConfig`, built from the defaults below or from a JSON/YAML file
named by ``CAMPUS_CONFIG_PATH``.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from engines.key_normalizer import DEFAULT_DEPARTMENT_ALIASES
from env_validation import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_COURSE_MAJORS: Dict[str, List[str]] = {
    "IT": ["Computer Technology", "Electronics"],
    "BSED": ["English", "Physical Education", "Math", "Filipino", "Social Science"],
    "HM": ["General"],
    "BEED": ["General"],
    "TOURISM": ["General"],
}


@dataclass
class CampusConfig:
    department_aliases: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_DEPARTMENT_ALIASES))
    course_majors: Dict[str, List[str]] = field(
        default_factory=lambda: {course: list(majors) for course, majors in DEFAULT_COURSE_MAJORS.items()}
    )
    passing_grade_ceiling: float = 3.0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "CampusConfig":
        """Overlay ``payload`` on the defaults; unknown keys are ignored."""

        config = cls()
        aliases = payload.get("department_aliases")
        if aliases is not None:
            if not isinstance(aliases, Mapping):
                raise ConfigurationError("department_aliases must be a mapping")
            config.department_aliases = {
                str(alias).strip().upper(): str(target).strip().upper() for alias, target in aliases.items()
            }
        majors = payload.get("course_majors")
        if majors is not None:
            if not isinstance(majors, Mapping):
                raise ConfigurationError("course_majors must be a mapping of course to majors")
            config.course_majors = {
                str(course).strip().upper(): [str(major) for major in (values or [])]
                for course, values in majors.items()
            }
        ceiling = payload.get("passing_grade_ceiling")
        if ceiling is not None:
            try:
                config.passing_grade_ceiling = float(ceiling)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Invalid passing_grade_ceiling: {ceiling!r}") from exc
        return config


def _load_payload(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".json":
        payload = json.loads(text)
    elif suffix in {".yml", ".yaml"}:
        payload = yaml.safe_load(text)
    else:
        raise ConfigurationError(f"Unsupported campus config format: {path}")
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Campus config must be a mapping: {path}")
    return payload


def load_campus_config(path: Optional[os.PathLike] = None) -> CampusConfig:
    """Load the campus tables from ``path`` or ``CAMPUS_CONFIG_PATH``.

    Without either, or when the environment points at a missing file, the
    built-in defaults are returned.  An explicit ``path`` must exist.
    """

    explicit = path is not None
    location = path if explicit else os.getenv("CAMPUS_CONFIG_PATH")
    if not location:
        return CampusConfig()
    config_path = Path(location)
    if not config_path.is_file():
        if explicit:
            raise ConfigurationError(f"Campus config not found: {config_path}")
        logger.warning("Campus config %s not found; using built-in tables", config_path)
        return CampusConfig()
    try:
        payload = _load_payload(config_path)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Invalid campus config: {config_path}") from exc
    logger.info("Loaded campus config from %s", config_path)
    return CampusConfig.from_mapping(payload)
