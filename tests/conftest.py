"""
Pytest configuration and shared fixtures.
"""

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

from painsignal.database import dispose_engines, get_session_factory, init_database
from painsignal.logger import get_logger, reset_logger
from painsignal.pipeline import Pipeline

# Every lifecycle test counts days from this posting date
POSTED = date(2024, 1, 1)


@pytest.fixture(autouse=True)
def quiet_logger(tmp_path):
    """Route the global logger to a temp dir with console output off."""
    reset_logger()
    get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield
    reset_logger()
    dispose_engines()


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "painsignal.db"


@pytest.fixture
def session_factory(db_path):
    init_database(db_path)
    return get_session_factory(db_path)


@pytest.fixture
def pipeline(db_path) -> Pipeline:
    return Pipeline.for_database(db_path, max_workers=4)


@pytest.fixture
def day() -> Callable[[int], datetime]:
    """Timestamp N days after POSTED, at midday."""
    def _day(n: int) -> datetime:
        return datetime(POSTED.year, POSTED.month, POSTED.day, 12, 0) + timedelta(days=n)
    return _day


@pytest.fixture
def make_posting() -> Callable[..., Dict[str, Any]]:
    """Build a raw posting payload; keyword arguments override defaults."""
    def _make(**overrides) -> Dict[str, Any]:
        posting = {
            "title": "Site Manager",
            "company_name": "Northfield Construction Ltd",
            "location": "London",
            "posted_date": POSTED.isoformat(),
            "description": "Lead our residential build in North London.",
            "source": "reed",
        }
        posting.update(overrides)
        return posting
    return _make


@pytest.fixture
def make_contract() -> Callable[..., Dict[str, Any]]:
    def _make(**overrides) -> Dict[str, Any]:
        contract = {
            "supplier_name": "Northfield Construction Ltd",
            "award_date": POSTED.isoformat(),
            "value": 1_200_000,
            "buyer_name": "London Borough of Camden",
            "title": "School refurbishment framework",
            "source": "contracts_finder",
            "source_ref": "ocds-b5fd17-0001:1:sup-1",
        }
        contract.update(overrides)
        return contract
    return _make


@pytest.fixture
def reed_job() -> Dict[str, Any]:
    """One result as returned by the Reed search API."""
    return {
        "jobId": 51234567,
        "employerId": 9001,
        "employerName": "Northfield Construction Ltd",
        "jobTitle": "Site Manager",
        "locationName": "London",
        "minimumSalary": 55000.0,
        "maximumSalary": 65000.0,
        "currency": "GBP",
        "expirationDate": "15/02/2024",
        "date": "01/01/2024",
        "jobDescription": "Site Manager needed for a residential scheme. Referral bonus of £1,000.",
        "applications": 4,
        "jobUrl": "https://www.reed.co.uk/jobs/site-manager/51234567",
    }
