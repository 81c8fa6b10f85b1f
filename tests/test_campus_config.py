import json
from pathlib import Path

import pytest

from campus_config import DEFAULT_COURSE_MAJORS, CampusConfig, load_campus_config
from env_validation import ConfigurationError

BUNDLED_CONFIG = Path(__file__).resolve().parents[1] / "config" / "campus.yaml"


def test_defaults_without_path_or_environment(monkeypatch):
    monkeypatch.delenv("CAMPUS_CONFIG_PATH", raising=False)

    config = load_campus_config()

    assert config.department_aliases == {"BSEED": "BSED"}
    assert config.course_majors == DEFAULT_COURSE_MAJORS
    assert config.passing_grade_ceiling == 3.0


def test_default_tables_are_not_shared_between_instances():
    first = CampusConfig()
    first.course_majors["IT"].append("Networking")

    assert "Networking" not in CampusConfig().course_majors["IT"]
    assert "Networking" not in DEFAULT_COURSE_MAJORS["IT"]


def test_bundled_yaml_matches_defaults():
    config = load_campus_config(BUNDLED_CONFIG)

    assert config == CampusConfig()


def test_load_yaml_overrides(tmp_path):
    path = tmp_path / "campus.yml"
    path.write_text(
        "department_aliases:\n  hrm: hm\ncourse_majors:\n  nursing: [General]\npassing_grade_ceiling: '2.5'\n",
        encoding="utf-8",
    )

    config = load_campus_config(path)

    assert config.department_aliases == {"HRM": "HM"}
    assert config.course_majors == {"NURSING": ["General"]}
    assert config.passing_grade_ceiling == 2.5


def test_load_json_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "campus.json"
    path.write_text(json.dumps({"passing_grade_ceiling": 4}), encoding="utf-8")
    monkeypatch.setenv("CAMPUS_CONFIG_PATH", str(path))

    config = load_campus_config()

    assert config.passing_grade_ceiling == 4.0
    assert config.department_aliases == {"BSEED": "BSED"}


def test_empty_file_uses_defaults(tmp_path):
    path = tmp_path / "campus.yaml"
    path.write_text("", encoding="utf-8")

    assert load_campus_config(path) == CampusConfig()


def test_missing_environment_file_falls_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("CAMPUS_CONFIG_PATH", str(tmp_path / "absent.yaml"))

    assert load_campus_config() == CampusConfig()


def test_missing_explicit_file_raises(tmp_path):
    with pytest.raises(ConfigurationError):
        load_campus_config(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "name, text",
    [
        ("bad.json", "{not json"),
        ("bad.yaml", "course_majors: [unclosed"),
        ("list.yaml", "- a\n- b\n"),
        ("campus.toml", "a = 1"),
        ("aliases.json", json.dumps({"department_aliases": ["BSEED"]})),
        ("ceiling.json", json.dumps({"passing_grade_ceiling": "high"})),
    ],
)
def test_invalid_files_raise_configuration_error(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_campus_config(path)
