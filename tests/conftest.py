import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def users():
    return [
        {"id": 1, "username": "2024-0001", "full_name": "Ana Reyes", "role": "student"},
        {"id": 2, "username": "2024-0002", "full_name": "Ben Cruz", "role": "student"},
        {"id": 3, "username": "2024-0003", "full_name": None, "role": "student"},
        {"id": 10, "username": "tlopez", "full_name": "Teresa Lopez", "role": "teacher"},
    ]


@pytest.fixture
def assignments():
    return [
        {"id": 100, "user_id": 1, "username": "2024-0001", "year": "1", "section": "Power",
         "department": "BSEED", "major": "English", "payment": "owing", "owing_amount": "1500.50",
         "sanctions": "probation"},
        {"id": None, "user_id": None, "username": "2024-0002", "year": "1st Year", "section": "Integrity",
         "department": "IT", "major": "Electronics", "payment": "paid", "sanctions": "15"},
    ]


@pytest.fixture
def sections():
    return [
        {"id": 1, "year": "1", "name": "Power"},
        {"id": 2, "year": "1", "name": "Integrity"},
    ]


@pytest.fixture
def section_assignments():
    return [
        {"year": "1", "section": "Power", "building": "A", "floor": 2, "room": "201"},
    ]
