"""
Raw observation shapes and validation.

Provider payloads are untrusted: fields may be missing, duplicated or in
odd formats. validate_* returns a list of problems (empty means usable);
parse_* turns a payload into a typed observation or raises
DataQualityError.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from .errors import DataQualityError

REQUIRED_POSTING_FIELDS = ["title", "company_name", "posted_date"]
OPTIONAL_POSTING_STR_FIELDS = [
    "location",
    "description",
    "domain",
    "registry_number",
    "industry",
    "source",
    "source_id",
    "source_url",
    "salary_type",
]
REQUIRED_CONTRACT_FIELDS = ["supplier_name", "award_date"]

_UK_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


@dataclass(frozen=True)
class RawPosting:
    title: str
    company_name: str
    posted_date: date
    location: str = ""
    description: Optional[str] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    salary_type: Optional[str] = None
    domain: Optional[str] = None
    registry_number: Optional[str] = None
    industry: Optional[str] = None
    source: str = "unknown"
    source_id: Optional[str] = None
    source_url: Optional[str] = None


@dataclass(frozen=True)
class RawContract:
    supplier_name: str
    award_date: date
    value: Optional[float] = None
    buyer_name: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    registry_number: Optional[str] = None
    domain: Optional[str] = None
    region: Optional[str] = None
    source: str = "unknown"
    source_ref: Optional[str] = None
    source_url: Optional[str] = None


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def parse_date(value: Any) -> Optional[date]:
    """Parse dates given as date/datetime, ISO 'YYYY-MM-DD...' or UK 'dd/mm/yyyy'."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    raw = value.strip()
    try:
        m = _UK_DATE.match(raw)
        if m:
            day, month, year = (int(x) for x in m.groups())
            return date(year, month, day)
        m = _ISO_DATE.match(raw)
        if m:
            year, month, day = (int(x) for x in m.groups())
            return date(year, month, day)
    except ValueError:
        return None
    return None


def _parse_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace("£", "").strip()
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def html_to_text(html: Optional[str]) -> Optional[str]:
    """Reduce an HTML description to plain text."""
    if not html:
        return None
    if "<" not in html:
        return html.strip() or None
    text = BeautifulSoup(html, "html.parser").get_text(" ", strip=True)
    return text or None


def validate_posting(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    for f in REQUIRED_POSTING_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")
        elif f != "posted_date" and not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    if data.get("posted_date") is not None and parse_date(data["posted_date"]) is None:
        errors.append(f"Field 'posted_date' is not a recognised date: {data['posted_date']!r}")

    for f in OPTIONAL_POSTING_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    for f in ("salary_min", "salary_max"):
        if data.get(f) not in (None, "") and _parse_number(data[f]) is None:
            errors.append(f"Field '{f}' must be numeric if provided")

    return errors


def validate_contract(data: Dict[str, Any]) -> List[str]:
    errors: List[str] = []

    for f in REQUIRED_CONTRACT_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")

    if "supplier_name" in data and data["supplier_name"] is not None and not _is_non_empty_str(data["supplier_name"]):
        errors.append("Field 'supplier_name' must be a non-empty string")
    if data.get("award_date") is not None and parse_date(data["award_date"]) is None:
        errors.append(f"Field 'award_date' is not a recognised date: {data['award_date']!r}")
    if data.get("value") not in (None, "") and _parse_number(data["value"]) is None:
        errors.append("Field 'value' must be numeric if provided")

    return errors


def _opt_str(data: Dict[str, Any], key: str) -> Optional[str]:
    v = data.get(key)
    if isinstance(v, str) and v.strip():
        return v.strip()
    return None


def parse_posting(data: Dict[str, Any]) -> RawPosting:
    """Validate and convert a raw job payload."""
    errors = validate_posting(data)
    if errors:
        raise DataQualityError(errors)

    return RawPosting(
        title=data["title"].strip(),
        company_name=data["company_name"].strip(),
        posted_date=parse_date(data["posted_date"]),
        location=_opt_str(data, "location") or "",
        description=html_to_text(_opt_str(data, "description")),
        salary_min=_parse_number(data.get("salary_min")),
        salary_max=_parse_number(data.get("salary_max")),
        salary_type=_opt_str(data, "salary_type"),
        domain=_opt_str(data, "domain"),
        registry_number=_opt_str(data, "registry_number"),
        industry=_opt_str(data, "industry"),
        source=_opt_str(data, "source") or "unknown",
        source_id=_opt_str(data, "source_id"),
        source_url=_opt_str(data, "source_url"),
    )


def parse_contract(data: Dict[str, Any]) -> RawContract:
    """Validate and convert a raw contract-award payload."""
    errors = validate_contract(data)
    if errors:
        raise DataQualityError(errors)

    return RawContract(
        supplier_name=data["supplier_name"].strip(),
        award_date=parse_date(data["award_date"]),
        value=_parse_number(data.get("value")),
        buyer_name=_opt_str(data, "buyer_name"),
        title=_opt_str(data, "title") or "",
        description=html_to_text(_opt_str(data, "description")),
        registry_number=_opt_str(data, "registry_number"),
        domain=_opt_str(data, "domain"),
        region=_opt_str(data, "region"),
        source=_opt_str(data, "source") or "unknown",
        source_ref=_opt_str(data, "source_ref"),
        source_url=_opt_str(data, "source_url"),
    )
