"""
Job posting lifecycle tracking.

Responsibilities:
- Decide whether an observation is a new posting, a refresh of a tracked
  posting, or a repost of a closed posting at the same company.
- Derive days open, days since refresh, salary delta and referral bonus.

Non-Responsibilities:
- Flipping postings inactive (the maintenance sweep does that).
- Emitting signals.

Invariant:
Re-observing the same posting any number of times leaves it in the same
state apart from last_seen_at.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from . import repository as repo
from .config import EngineConfig
from .database import Company, JobPosting
from .normalize import (
    detect_industry,
    job_fingerprint,
    locations_compatible,
    normalize_job_title,
    normalize_location,
    title_similarity,
)
from .salary import detect_referral_bonus, normalize_salary, salary_increase_percent
from .schema import RawPosting
from .taxonomy import SignalType


class Transition(str, Enum):
    NEW = "new"
    REFRESHED = "refreshed"
    REPOSTED = "reposted"


@dataclass(frozen=True)
class LifecycleResult:
    posting: JobPosting
    transition: Transition
    days_open: int
    days_since_refresh: int
    salary_increase: Optional[int] = None
    predecessor: Optional[JobPosting] = None


def days_between(start: date, end: datetime) -> int:
    """Whole days from a date to a timestamp, never negative."""
    return max(0, (end.date() - start).days)


def classify_staleness(days_open: int, days_since_refresh: int,
                       config: EngineConfig) -> Optional[SignalType]:
    """
    One of the six hard-to-fill / stale classifications, or None under
    the first day bucket.
    """
    first, second, third = config.day_buckets
    if days_open < first:
        return None

    refreshed = days_since_refresh <= config.refresh_threshold_days
    if days_open >= third:
        return SignalType.HARD_TO_FILL_90 if refreshed else SignalType.STALE_JOB_90
    if days_open >= second:
        return SignalType.HARD_TO_FILL_60 if refreshed else SignalType.STALE_JOB_60
    return SignalType.HARD_TO_FILL_30 if refreshed else SignalType.STALE_JOB_30


class JobLifecycleTracker:
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def observe(self, session: Session, company: Company, raw: RawPosting,
                now: Optional[datetime] = None) -> LifecycleResult:
        now = now or datetime.now()
        fingerprint = job_fingerprint(raw.title, company.id, raw.location)
        salary = normalize_salary(raw.salary_min, raw.salary_max, raw.salary_type)

        existing = repo.get_posting_by_fingerprint(session, fingerprint)
        if existing is not None:
            return self._refresh(session, existing, raw, salary, now)

        predecessor = self._find_predecessor(session, company, raw)
        posting = self._build_posting(company, raw, fingerprint, salary, now)
        increase = None
        if predecessor is not None:
            posting.repost_count = (predecessor.repost_count or 0) + 1
            posting.previous_posting_id = predecessor.id
            increase = salary_increase_percent(
                predecessor.salary_min, predecessor.salary_max,
                salary.annual_min, salary.annual_max,
            )
            posting.salary_increase_from_previous = increase

        posting, created = repo.insert_posting_if_absent(session, posting)
        if not created:
            # Another worker inserted this fingerprint first
            return self._refresh(session, posting, raw, salary, now)

        repo.record_observation(session, posting, now, salary.annual_min, salary.annual_max)
        return LifecycleResult(
            posting=posting,
            transition=Transition.REPOSTED if predecessor is not None else Transition.NEW,
            days_open=days_between(posting.original_posted_date, now),
            days_since_refresh=0,
            salary_increase=increase,
            predecessor=predecessor,
        )

    def _refresh(self, session: Session, posting: JobPosting, raw: RawPosting,
                 salary, now: datetime) -> LifecycleResult:
        # last_seen only moves forward so out-of-order observations commute
        if posting.last_seen_at is None or now > posting.last_seen_at:
            posting.last_seen_at = now
        posting.is_active = True

        if salary.is_known:
            increase = salary_increase_percent(
                posting.salary_min, posting.salary_max, salary.annual_min, salary.annual_max
            )
            if increase is not None and increase >= self.config.salary_tiers[0]:
                posting.salary_increase_from_previous = increase
            if increase is None or increase > 0:
                posting.salary_min = salary.annual_min
                posting.salary_max = salary.annual_max
                posting.salary_type = salary.salary_type

        if not posting.mentions_referral_bonus:
            flagged, amount = detect_referral_bonus(raw.description)
            if flagged:
                posting.mentions_referral_bonus = True
                posting.referral_bonus_amount = amount

        posting.updated_at = now
        session.flush()
        repo.record_observation(session, posting, now, salary.annual_min, salary.annual_max)
        return LifecycleResult(
            posting=posting,
            transition=Transition.REFRESHED,
            days_open=days_between(posting.original_posted_date, now),
            days_since_refresh=0,
            salary_increase=posting.salary_increase_from_previous,
        )

    def _find_predecessor(self, session: Session, company: Company,
                          raw: RawPosting) -> Optional[JobPosting]:
        """Most recent closed posting at this company for the same role and area."""
        window = repo.recent_inactive_postings(session, company.id, self.config.repost_search_window)
        for candidate in window:
            if not locations_compatible(candidate.location or "", raw.location):
                continue
            if title_similarity(candidate.title, raw.title) >= self.config.title_similarity_threshold:
                return candidate
        return None

    @staticmethod
    def _build_posting(company: Company, raw: RawPosting, fingerprint: str,
                       salary, now: datetime) -> JobPosting:
        flagged, amount = detect_referral_bonus(raw.description)
        return JobPosting(
            company_id=company.id,
            fingerprint=fingerprint,
            title=raw.title,
            title_normalized=normalize_job_title(raw.title),
            location=raw.location,
            location_normalized=normalize_location(raw.location),
            salary_min=salary.annual_min,
            salary_max=salary.annual_max,
            salary_type=salary.salary_type if salary.is_known else None,
            industry=raw.industry or detect_industry(raw.title),
            source=raw.source,
            source_id=raw.source_id,
            source_url=raw.source_url,
            original_posted_date=raw.posted_date,
            first_seen_at=now,
            last_seen_at=now,
            is_active=True,
            repost_count=0,
            mentions_referral_bonus=flagged,
            referral_bonus_amount=amount,
            raw_description=raw.description,
            employer_name_from_source=raw.company_name,
            created_at=now,
            updated_at=now,
        )
