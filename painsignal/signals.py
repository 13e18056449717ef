"""
Pain signal generation.

Signals are an append-only, closable log. A change of classification
within a family resolves the active signal and inserts a new one; rows
are never edited in place apart from being resolved.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from . import repository as repo
from .config import EngineConfig
from .database import Company, ContractAward, JobPosting, PainSignal
from .lifecycle import LifecycleResult, classify_staleness
from .taxonomy import SignalFamily, SignalType


@dataclass
class SignalChanges:
    emitted: List[PainSignal] = field(default_factory=list)
    resolved: List[PainSignal] = field(default_factory=list)

    def extend(self, other: "SignalChanges") -> None:
        self.emitted.extend(other.emitted)
        self.resolved.extend(other.resolved)

    @property
    def changed(self) -> bool:
        return bool(self.emitted or self.resolved)


def repost_signal_type(repost_count: int) -> Optional[SignalType]:
    if repost_count >= 3:
        return SignalType.JOB_REPOSTED_THREE_PLUS
    if repost_count == 2:
        return SignalType.JOB_REPOSTED_TWICE
    if repost_count == 1:
        return SignalType.JOB_REPOSTED_ONCE
    return None


def salary_signal_type(increase: Optional[int], tiers) -> Optional[SignalType]:
    if increase is None:
        return None
    lower, upper = tiers
    if increase >= upper:
        return SignalType.SALARY_INCREASE_20_PERCENT
    if increase >= lower:
        return SignalType.SALARY_INCREASE_10_PERCENT
    return None


def format_contract_value(value: Optional[float]) -> str:
    if not value:
        return "Undisclosed"
    if value >= 1_000_000:
        return f"£{value / 1_000_000:.1f}M"
    return f"£{value / 1000:.0f}k"


class SignalGenerator:
    """Maps lifecycle results and contract reconciliation onto the signal taxonomy."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def generate(self, session: Session, company: Company, result: LifecycleResult,
                 now: Optional[datetime] = None) -> SignalChanges:
        now = now or datetime.now()
        posting = result.posting
        changes = SignalChanges()

        changes.extend(self.apply_staleness(
            session, company, posting, result.days_open, result.days_since_refresh, now
        ))

        repost_type = repost_signal_type(posting.repost_count or 0)
        if repost_type is not None:
            changes.extend(self._replace_in_family(
                session, company.id, repost_type, now, posting=posting,
                title=f"{posting.title} - Reposted {posting.repost_count}x",
                detail=(
                    f"This role has been reposted {posting.repost_count} time(s), "
                    f"indicating failed hiring attempts."
                ),
                value=posting.repost_count,
            ))

        salary_type = salary_signal_type(result.salary_increase, self.config.salary_tiers)
        if salary_type is not None:
            changes.extend(self._emit_once(
                session, company.id, salary_type, now, posting=posting,
                title=f"{posting.title} - Salary increased {result.salary_increase}%",
                detail=(
                    f"Salary for this role has increased by {result.salary_increase}% "
                    f"from the previous posting."
                ),
                value=result.salary_increase,
            ))

        if posting.mentions_referral_bonus:
            amount = posting.referral_bonus_amount
            bonus_text = f"£{amount:,}" if amount else "offered"
            changes.extend(self._emit_once(
                session, company.id, SignalType.HIGH_REFERRAL_BONUS, now, posting=posting,
                title=f"{posting.title} - Referral bonus {bonus_text}",
                detail="Company is offering a referral bonus for this role.",
                value=amount or 0,
            ))

        return changes

    def apply_staleness(self, session: Session, company: Company, posting: JobPosting,
                        days_open: int, days_since_refresh: int, now: datetime) -> SignalChanges:
        """Bring the posting's hard-to-fill / stale signal in line with its age and freshness."""
        signal_type = classify_staleness(days_open, days_since_refresh, self.config)
        if signal_type is None:
            return SignalChanges()

        hard_to_fill = signal_type.value.startswith("hard_to_fill")
        location = f" Location: {posting.location}." if posting.location else ""
        base = f'"{posting.title}" at {company.name} has been open for {days_open} days.{location}'
        if hard_to_fill:
            label = "Slow to fill" if days_open < self.config.day_buckets[1] else "Hard to fill"
            detail = f"{base} Still actively recruiting - refreshed {days_since_refresh} days ago."
        else:
            if days_open >= self.config.day_buckets[2]:
                label = "Possibly abandoned"
            elif days_open >= self.config.day_buckets[1]:
                label = "Possibly stale"
            else:
                label = "May be stale"
            detail = f"{base} Not refreshed in {days_since_refresh} days - may be abandoned."

        return self._replace_in_family(
            session, company.id, signal_type, now, posting=posting,
            title=f"{posting.title} - {label} ({days_open} days)",
            detail=detail,
            value=days_open,
            days_since_refresh=days_since_refresh,
        )

    def apply_contract(self, session: Session, company: Company, award: ContractAward,
                       days_since_award: int, now: datetime) -> SignalChanges:
        """Emit or upgrade the no-hiring signal for a contract with no postings since award."""
        first, second = self.config.contract_windows
        if days_since_award < first:
            return SignalChanges()
        signal_type = (
            SignalType.CONTRACT_NO_HIRING_60_DAYS if days_since_award >= second
            else SignalType.CONTRACT_NO_HIRING_30_DAYS
        )
        value_text = format_contract_value(award.value_gbp)
        return self._replace_in_family(
            session, company.id, signal_type, now, contract=award,
            title=f"{value_text} contract - No hiring after {days_since_award} days",
            detail=(
                f'{company.name} won a {value_text} contract "{award.title}" '
                f"{days_since_award} days ago but has posted no jobs. Likely capacity constraint."
            ),
            value=days_since_award,
        )

    def resolve_family(self, session: Session, company_id: str, family: SignalFamily, now: datetime,
                       posting: Optional[JobPosting] = None,
                       contract: Optional[ContractAward] = None) -> SignalChanges:
        changes = SignalChanges()
        for signal in repo.active_family_signals(
            session, company_id, family.value,
            posting_id=posting.id if posting is not None else None,
            contract_id=contract.id if contract is not None else None,
        ):
            repo.resolve_signal(session, signal, now)
            changes.resolved.append(signal)
        return changes

    def _replace_in_family(self, session: Session, company_id: str, signal_type: SignalType,
                           now: datetime, posting: Optional[JobPosting] = None,
                           contract: Optional[ContractAward] = None, **fields) -> SignalChanges:
        active = repo.active_family_signals(
            session, company_id, signal_type.family.value,
            posting_id=posting.id if posting is not None else None,
            contract_id=contract.id if contract is not None else None,
        )
        if len(active) == 1 and active[0].signal_type == signal_type.value:
            return SignalChanges()

        changes = SignalChanges()
        for signal in active:
            repo.resolve_signal(session, signal, now)
            changes.resolved.append(signal)
        changes.emitted.append(self._insert(session, company_id, signal_type, now, posting, contract, **fields))
        return changes

    def _emit_once(self, session: Session, company_id: str, signal_type: SignalType,
                   now: datetime, posting: JobPosting, **fields) -> SignalChanges:
        if repo.posting_has_family_signal(session, posting.id, signal_type.family.value):
            return SignalChanges()
        return SignalChanges(emitted=[self._insert(session, company_id, signal_type, now, posting, None, **fields)])

    def _insert(self, session: Session, company_id: str, signal_type: SignalType, now: datetime,
                posting: Optional[JobPosting], contract: Optional[ContractAward],
                title: str, detail: str, value: Optional[int] = None,
                days_since_refresh: Optional[int] = None) -> PainSignal:
        spec = self.config.spec_for(signal_type)
        return repo.insert_signal(session, PainSignal(
            company_id=company_id,
            signal_type=signal_type.value,
            signal_family=signal_type.family.value,
            source_job_posting_id=posting.id if posting is not None else None,
            source_contract_id=contract.id if contract is not None else None,
            signal_title=title,
            signal_detail=detail,
            signal_value=value,
            days_since_refresh=days_since_refresh,
            pain_score_contribution=spec.score,
            confidence=spec.confidence_base,
            urgency=spec.urgency.value,
            is_active=True,
            detected_at=now,
        ))
