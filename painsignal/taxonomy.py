"""
Pain signal taxonomy.

Every signal type belongs to exactly one family. At most one signal of a
family is active per (company, source) pair; moving between types of the
same family closes the old signal and opens a new one.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Urgency(str, Enum):
    IMMEDIATE = "immediate"
    SHORT_TERM = "short_term"
    MEDIUM_TERM = "medium_term"


class SignalFamily(str, Enum):
    STALENESS = "staleness"
    REPOST = "repost"
    SALARY = "salary"
    REFERRAL = "referral"
    CONTRACT = "contract"


class SignalType(str, Enum):
    HARD_TO_FILL_30 = "hard_to_fill_30"
    HARD_TO_FILL_60 = "hard_to_fill_60"
    HARD_TO_FILL_90 = "hard_to_fill_90"
    STALE_JOB_30 = "stale_job_30"
    STALE_JOB_60 = "stale_job_60"
    STALE_JOB_90 = "stale_job_90"
    JOB_REPOSTED_ONCE = "job_reposted_once"
    JOB_REPOSTED_TWICE = "job_reposted_twice"
    JOB_REPOSTED_THREE_PLUS = "job_reposted_three_plus"
    SALARY_INCREASE_10_PERCENT = "salary_increase_10_percent"
    SALARY_INCREASE_20_PERCENT = "salary_increase_20_percent"
    HIGH_REFERRAL_BONUS = "high_referral_bonus"
    CONTRACT_NO_HIRING_30_DAYS = "contract_no_hiring_30_days"
    CONTRACT_NO_HIRING_60_DAYS = "contract_no_hiring_60_days"

    @property
    def family(self) -> SignalFamily:
        return SIGNAL_FAMILIES[self]


SIGNAL_FAMILIES = {
    SignalType.HARD_TO_FILL_30: SignalFamily.STALENESS,
    SignalType.HARD_TO_FILL_60: SignalFamily.STALENESS,
    SignalType.HARD_TO_FILL_90: SignalFamily.STALENESS,
    SignalType.STALE_JOB_30: SignalFamily.STALENESS,
    SignalType.STALE_JOB_60: SignalFamily.STALENESS,
    SignalType.STALE_JOB_90: SignalFamily.STALENESS,
    SignalType.JOB_REPOSTED_ONCE: SignalFamily.REPOST,
    SignalType.JOB_REPOSTED_TWICE: SignalFamily.REPOST,
    SignalType.JOB_REPOSTED_THREE_PLUS: SignalFamily.REPOST,
    SignalType.SALARY_INCREASE_10_PERCENT: SignalFamily.SALARY,
    SignalType.SALARY_INCREASE_20_PERCENT: SignalFamily.SALARY,
    SignalType.HIGH_REFERRAL_BONUS: SignalFamily.REFERRAL,
    SignalType.CONTRACT_NO_HIRING_30_DAYS: SignalFamily.CONTRACT,
    SignalType.CONTRACT_NO_HIRING_60_DAYS: SignalFamily.CONTRACT,
}


@dataclass(frozen=True)
class SignalSpec:
    """Score contribution and urgency tier for one signal type."""

    score: int
    urgency: Urgency
    confidence_base: int = 50


DEFAULT_SIGNAL_TABLE: Mapping[SignalType, SignalSpec] = MappingProxyType({
    # Actively refreshed: confirmed recruiting effort
    SignalType.HARD_TO_FILL_30: SignalSpec(8, Urgency.SHORT_TERM, 70),
    SignalType.HARD_TO_FILL_60: SignalSpec(20, Urgency.IMMEDIATE, 85),
    SignalType.HARD_TO_FILL_90: SignalSpec(35, Urgency.IMMEDIATE, 95),
    # Not refreshed: possibly abandoned
    SignalType.STALE_JOB_30: SignalSpec(5, Urgency.MEDIUM_TERM, 50),
    SignalType.STALE_JOB_60: SignalSpec(15, Urgency.SHORT_TERM, 60),
    SignalType.STALE_JOB_90: SignalSpec(25, Urgency.IMMEDIATE, 70),
    SignalType.JOB_REPOSTED_ONCE: SignalSpec(10, Urgency.IMMEDIATE, 85),
    SignalType.JOB_REPOSTED_TWICE: SignalSpec(20, Urgency.IMMEDIATE, 90),
    SignalType.JOB_REPOSTED_THREE_PLUS: SignalSpec(30, Urgency.IMMEDIATE, 95),
    SignalType.SALARY_INCREASE_10_PERCENT: SignalSpec(15, Urgency.IMMEDIATE, 80),
    SignalType.SALARY_INCREASE_20_PERCENT: SignalSpec(25, Urgency.IMMEDIATE, 85),
    SignalType.HIGH_REFERRAL_BONUS: SignalSpec(15, Urgency.SHORT_TERM, 75),
    SignalType.CONTRACT_NO_HIRING_30_DAYS: SignalSpec(20, Urgency.IMMEDIATE, 70),
    SignalType.CONTRACT_NO_HIRING_60_DAYS: SignalSpec(35, Urgency.IMMEDIATE, 85),
})
