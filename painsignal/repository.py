"""
Repository.

Responsibilities:
- Indexed lookups and transaction-safe writes for companies, postings,
  contract awards and pain signals.
- "Insert if absent, else return existing" upserts guarded by unique
  constraints and savepoints.

Non-Responsibilities:
- No matching, classification or scoring decisions.

Invariant:
A unique-constraint race is never surfaced to callers; the losing writer
gets the winning row back.
"""

from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .database import (
    ApiUsage,
    Company,
    CompanyNameToken,
    ContractAward,
    JobObservation,
    JobPosting,
    PainSignal,
)


# Companies

def find_company_by_domain(session: Session, domain: str) -> Optional[Company]:
    return session.query(Company).filter(func.lower(Company.domain) == domain.lower()).first()


def find_company_by_registry_number(session: Session, registry_number: str) -> Optional[Company]:
    return session.query(Company).filter(Company.registry_number == registry_number).first()


def find_company_by_normalized_name(session: Session, normalized_name: str) -> Optional[Company]:
    # Oldest first so repeated lookups keep returning the same row
    return (
        session.query(Company)
        .filter(Company.name_normalized == normalized_name)
        .order_by(Company.created_at, Company.id)
        .first()
    )


def find_company_candidates(session: Session, tokens: Sequence[str], limit: int) -> List[Company]:
    """Companies sharing at least one name token, most shared tokens first."""
    if not tokens:
        return []
    shared = func.count(CompanyNameToken.token).label("shared")
    rows = (
        session.query(CompanyNameToken.company_id, shared)
        .filter(CompanyNameToken.token.in_(list(tokens)))
        .group_by(CompanyNameToken.company_id)
        .order_by(shared.desc(), CompanyNameToken.company_id)
        .limit(limit)
        .all()
    )
    ids = [company_id for company_id, _ in rows]
    if not ids:
        return []
    companies = session.query(Company).filter(Company.id.in_(ids)).all()
    by_id = {c.id: c for c in companies}
    return [by_id[i] for i in ids if i in by_id]


def get_company(session: Session, company_id: str) -> Optional[Company]:
    return session.get(Company, company_id)


def insert_company(session: Session, company: Company, tokens: Iterable[str]) -> bool:
    """
    Insert a company and its name tokens inside a savepoint.

    Returns False (and leaves the session usable) when a unique
    constraint on domain or registry number was hit.
    """
    try:
        with session.begin_nested():
            session.add(company)
            session.flush()
            for token in tokens:
                session.add(CompanyNameToken(company_id=company.id, token=token))
            session.flush()
    except IntegrityError:
        return False
    return True


def overwrite_pain_score(session: Session, company_id: str, score: int, now: datetime) -> None:
    session.execute(
        update(Company)
        .where(Company.id == company_id)
        .values(
            hiring_pain_score=score,
            pain_score_updated_at=now,
            last_activity_at=now,
            updated_at=now,
        )
    )


def touch_company(session: Session, company_id: str, now: datetime) -> None:
    session.execute(
        update(Company)
        .where(Company.id == company_id)
        .values(last_activity_at=now)
    )


def top_companies(session: Session, min_score: int = 0, limit: int = 50) -> List[Company]:
    return (
        session.query(Company)
        .filter(Company.hiring_pain_score >= min_score)
        .order_by(Company.hiring_pain_score.desc(), Company.name)
        .limit(limit)
        .all()
    )


# Job postings

def get_posting_by_fingerprint(session: Session, fingerprint: str) -> Optional[JobPosting]:
    return session.query(JobPosting).filter(JobPosting.fingerprint == fingerprint).first()


def insert_posting_if_absent(session: Session, posting: JobPosting) -> Tuple[JobPosting, bool]:
    """
    Insert a posting unless its fingerprint already exists.

    Returns (row, created). On a fingerprint conflict the existing row is
    returned with created=False.
    """
    try:
        with session.begin_nested():
            session.add(posting)
            session.flush()
    except IntegrityError:
        existing = get_posting_by_fingerprint(session, posting.fingerprint)
        if existing is None:
            raise
        return existing, False
    return posting, True


def recent_inactive_postings(session: Session, company_id: str, limit: int) -> List[JobPosting]:
    return (
        session.query(JobPosting)
        .filter(JobPosting.company_id == company_id, JobPosting.is_active.is_(False))
        .order_by(JobPosting.last_seen_at.desc(), JobPosting.id)
        .limit(limit)
        .all()
    )


def record_observation(session: Session, posting: JobPosting, now: datetime,
                       salary_min: Optional[int], salary_max: Optional[int]) -> None:
    session.add(JobObservation(
        job_posting_id=posting.id,
        observed_at=now,
        salary_min=salary_min,
        salary_max=salary_max,
        was_active=True,
    ))


def active_postings(session: Session, company_id: Optional[str] = None) -> List[JobPosting]:
    q = session.query(JobPosting).filter(JobPosting.is_active.is_(True))
    if company_id is not None:
        q = q.filter(JobPosting.company_id == company_id)
    return q.order_by(JobPosting.id).all()


def companies_with_active_postings(session: Session) -> List[str]:
    rows = (
        session.query(JobPosting.company_id)
        .filter(JobPosting.is_active.is_(True))
        .distinct()
        .all()
    )
    return sorted(row[0] for row in rows)


def deactivate_postings_unseen_since(session: Session, cutoff: datetime, now: datetime) -> List[str]:
    """Flip active postings last seen before cutoff; return their ids."""
    ids = [
        row[0] for row in session.execute(
            select(JobPosting.id).where(
                JobPosting.is_active.is_(True),
                JobPosting.last_seen_at < cutoff,
            )
        )
    ]
    if ids:
        session.execute(
            update(JobPosting)
            .where(JobPosting.id.in_(ids))
            .values(is_active=False, updated_at=now)
        )
    return ids


def count_postings_since(session: Session, company_id: str, since: date) -> int:
    return (
        session.query(func.count(JobPosting.id))
        .filter(JobPosting.company_id == company_id, JobPosting.original_posted_date >= since)
        .scalar()
    ) or 0


# Contract awards

def get_contract(session: Session, source: str, source_ref: str) -> Optional[ContractAward]:
    return (
        session.query(ContractAward)
        .filter(ContractAward.source == source, ContractAward.source_ref == source_ref)
        .first()
    )


def insert_contract_if_absent(session: Session, award: ContractAward) -> Tuple[ContractAward, bool]:
    try:
        with session.begin_nested():
            session.add(award)
            session.flush()
    except IntegrityError:
        existing = get_contract(session, award.source, award.source_ref)
        if existing is None:
            raise
        return existing, False
    return award, True


def contracts_awarded_since(session: Session, since: date, min_value: float) -> List[ContractAward]:
    return (
        session.query(ContractAward)
        .filter(ContractAward.award_date >= since, ContractAward.value_gbp >= min_value)
        .order_by(ContractAward.award_date, ContractAward.id)
        .all()
    )


def contracts_with_active_signals(session: Session) -> List[ContractAward]:
    return (
        session.query(ContractAward)
        .join(PainSignal, PainSignal.source_contract_id == ContractAward.id)
        .filter(PainSignal.is_active.is_(True))
        .distinct()
        .order_by(ContractAward.award_date, ContractAward.id)
        .all()
    )


# Pain signals

def active_family_signals(
    session: Session,
    company_id: str,
    family: str,
    posting_id: Optional[str] = None,
    contract_id: Optional[str] = None,
) -> List[PainSignal]:
    q = session.query(PainSignal).filter(
        PainSignal.company_id == company_id,
        PainSignal.signal_family == family,
        PainSignal.is_active.is_(True),
    )
    if posting_id is not None:
        q = q.filter(PainSignal.source_job_posting_id == posting_id)
    if contract_id is not None:
        q = q.filter(PainSignal.source_contract_id == contract_id)
    return q.order_by(PainSignal.detected_at, PainSignal.id).all()


def posting_has_family_signal(session: Session, posting_id: str, family: str) -> bool:
    """True when the posting has ever had a signal of this family, active or resolved."""
    return session.query(
        session.query(PainSignal)
        .filter(PainSignal.source_job_posting_id == posting_id, PainSignal.signal_family == family)
        .exists()
    ).scalar()


def active_signals_for_postings(session: Session, posting_ids: Sequence[str]) -> List[PainSignal]:
    if not posting_ids:
        return []
    return (
        session.query(PainSignal)
        .filter(PainSignal.source_job_posting_id.in_(list(posting_ids)), PainSignal.is_active.is_(True))
        .all()
    )


def active_signals_for_inactive_postings(session: Session, company_id: Optional[str] = None) -> List[PainSignal]:
    q = (
        session.query(PainSignal)
        .join(JobPosting, PainSignal.source_job_posting_id == JobPosting.id)
        .filter(PainSignal.is_active.is_(True), JobPosting.is_active.is_(False))
    )
    if company_id is not None:
        q = q.filter(PainSignal.company_id == company_id)
    return q.order_by(PainSignal.detected_at, PainSignal.id).all()


def active_signals_for_company(session: Session, company_id: str) -> List[PainSignal]:
    return (
        session.query(PainSignal)
        .filter(PainSignal.company_id == company_id, PainSignal.is_active.is_(True))
        .order_by(PainSignal.pain_score_contribution.desc(), PainSignal.detected_at)
        .all()
    )


def insert_signal(session: Session, signal: PainSignal) -> PainSignal:
    session.add(signal)
    session.flush()
    return signal


def resolve_signal(session: Session, signal: PainSignal, now: datetime) -> None:
    signal.is_active = False
    signal.resolved_at = now
    session.flush()


def sum_active_contributions(session: Session, company_id: str) -> int:
    total = (
        session.query(func.coalesce(func.sum(PainSignal.pain_score_contribution), 0))
        .filter(PainSignal.company_id == company_id, PainSignal.is_active.is_(True))
        .scalar()
    )
    return int(total or 0)


# Provider budgets

def increment_api_usage(session: Session, provider: str, usage_date: date, limit: int) -> Optional[int]:
    """
    Atomically take one call from a provider's daily budget.

    Returns the new call count, or None when the budget is spent.
    """
    try:
        with session.begin_nested():
            session.add(ApiUsage(provider=provider, usage_date=usage_date, call_count=0))
            session.flush()
    except IntegrityError:
        pass  # row already exists for today

    result = session.execute(
        update(ApiUsage)
        .where(
            ApiUsage.provider == provider,
            ApiUsage.usage_date == usage_date,
            ApiUsage.call_count < limit,
        )
        .values(call_count=ApiUsage.call_count + 1)
    )
    if result.rowcount == 0:
        return None
    return session.execute(
        select(ApiUsage.call_count).where(
            ApiUsage.provider == provider, ApiUsage.usage_date == usage_date
        )
    ).scalar_one()


def api_usage_count(session: Session, provider: str, usage_date: date) -> int:
    count = session.execute(
        select(ApiUsage.call_count).where(
            ApiUsage.provider == provider, ApiUsage.usage_date == usage_date
        )
    ).scalar()
    return count or 0

