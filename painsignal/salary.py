"""Salary normalization and referral-bonus detection."""

import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple

WORKING_DAYS_PER_YEAR = 220
HOURS_PER_WEEK = 37.5
WEEKS_PER_YEAR = 52

SALARY_TYPES = ("annual", "monthly", "daily", "hourly")

_REFERRAL_AMOUNT = re.compile(r"referral\s*bonus[:\s]*(?:of\s*)?[£$]?([\d,]+)", re.IGNORECASE)
_REFERRAL_MENTION = re.compile(r"referral\s*bonus", re.IGNORECASE)


@dataclass(frozen=True)
class SalaryRange:
    annual_min: Optional[int]
    annual_max: Optional[int]
    salary_type: str = "annual"

    @property
    def is_known(self) -> bool:
        return self.annual_min is not None or self.annual_max is not None


UNKNOWN_SALARY = SalaryRange(None, None)


def normalize_to_annual(amount: float, salary_type: str) -> int:
    if salary_type == "monthly":
        return int(round(amount * 12))
    if salary_type == "daily":
        return int(round(amount * WORKING_DAYS_PER_YEAR))
    if salary_type == "hourly":
        return int(round(amount * HOURS_PER_WEEK * WEEKS_PER_YEAR))
    return int(round(amount))


def detect_salary_type(minimum: float, maximum: float) -> str:
    """Guess the pay period from typical UK ranges."""
    average = (minimum + maximum) / 2
    if 100 <= average <= 1500:
        return "daily"
    if 8 <= average < 100:
        return "hourly"
    return "annual"


def normalize_salary(
    salary_min: Optional[float],
    salary_max: Optional[float],
    salary_type: Optional[str] = None,
) -> SalaryRange:
    """
    Convert a provider salary range to annual figures.

    A missing side is filled from the other; zero counts as missing.
    Without an explicit salary_type the period is guessed.
    """
    if not salary_min and not salary_max:
        return UNKNOWN_SALARY

    low = salary_min or salary_max
    high = salary_max or salary_min
    if low > high:
        low, high = high, low

    kind = salary_type if salary_type in SALARY_TYPES else detect_salary_type(low, high)
    return SalaryRange(
        annual_min=normalize_to_annual(low, kind),
        annual_max=normalize_to_annual(high, kind),
        salary_type=kind,
    )


def _midpoint(low: Optional[int], high: Optional[int]) -> Optional[float]:
    if low and high:
        return (low + high) / 2
    return low or high or None


def salary_increase_percent(
    old_min: Optional[int],
    old_max: Optional[int],
    new_min: Optional[int],
    new_max: Optional[int],
) -> Optional[int]:
    """
    Percentage increase of the new range midpoint over the old one.

    None when either side has no salary data (unknown, not 'no increase').
    Zero when the new midpoint is not higher.
    """
    old_mid = _midpoint(old_min, old_max)
    new_mid = _midpoint(new_min, new_max)
    if not old_mid or not new_mid:
        return None
    if new_mid <= old_mid:
        return 0
    return int(math.floor((new_mid - old_mid) / old_mid * 100 + 0.5))


def detect_referral_bonus(text: Optional[str]) -> Tuple[bool, Optional[int]]:
    """Return (mentions_bonus, amount) for a posting description."""
    if not text:
        return False, None

    match = _REFERRAL_AMOUNT.search(text)
    if match:
        digits = match.group(1).replace(",", "")
        return True, int(digits) if digits.isdigit() else None

    if _REFERRAL_MENTION.search(text):
        return True, None
    return False, None


def format_salary(annual_min: Optional[int], annual_max: Optional[int]) -> str:
    if not annual_min and not annual_max:
        return "Not specified"

    def fmt(n: int) -> str:
        return f"£{round(n / 1000)}k" if n >= 1000 else f"£{n}"

    if annual_min and annual_max and annual_min != annual_max:
        return f"{fmt(annual_min)} - {fmt(annual_max)}"
    return fmt(annual_min or annual_max)
