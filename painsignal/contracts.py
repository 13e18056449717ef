"""
Contract awards.

Awards are stored idempotently per (source, source_ref). The no-hiring
signals are reconciled in a separate batch pass over recent large awards
and the postings made since each award, not at observation time.
"""

import hashlib
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from . import repository as repo
from .database import ContractAward, session_scope
from .errors import DataQualityError, InvariantViolation
from .pipeline import Pipeline
from .resolver import CompanyObservation
from .schema import RawContract, parse_contract
from .taxonomy import SignalFamily

ContractInput = Union[RawContract, Dict[str, Any]]


@dataclass
class ContractIngestResult:
    company_id: str
    contract_id: str
    match_type: str
    created: bool


@dataclass
class ReconcileStats:
    contracts_checked: int = 0
    signals_emitted: int = 0
    signals_resolved: int = 0
    bottlenecks: int = 0
    companies_rescored: int = 0
    errored: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def contract_reference(raw: RawContract) -> str:
    """Provider reference, or a stable hash when the provider gave none."""
    if raw.source_ref:
        return raw.source_ref
    key = "|".join([raw.supplier_name.lower(), raw.award_date.isoformat(), str(raw.value or ""), raw.title.lower()])
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


class ContractService:
    def __init__(self, pipeline: Pipeline):
        self.pipeline = pipeline
        self.config = pipeline.config
        self.logger = pipeline.logger

    def ingest_contract(self, raw: ContractInput, now: Optional[datetime] = None) -> ContractIngestResult:
        if not isinstance(raw, RawContract):
            raw = parse_contract(raw)
        now = now or datetime.now()

        resolved = self.pipeline.resolve_company(
            CompanyObservation(
                name=raw.supplier_name,
                domain=raw.domain,
                registry_number=raw.registry_number,
                location=raw.region,
            ),
            now,
        )
        company_id = resolved.company.id

        with self.pipeline.company_locks.hold(company_id):
            with session_scope(self.pipeline.factory) as session:
                award, created = repo.insert_contract_if_absent(session, ContractAward(
                    company_id=company_id,
                    source=raw.source,
                    source_ref=contract_reference(raw),
                    title=raw.title,
                    description=raw.description,
                    value_gbp=raw.value,
                    buyer_organisation=raw.buyer_name,
                    award_date=raw.award_date,
                    region=raw.region,
                    source_url=raw.source_url,
                    created_at=now,
                    updated_at=now,
                ))
                repo.touch_company(session, company_id, now)
                contract_id = award.id

        if created:
            self.logger.info("Stored contract award", company_id=company_id, contract_id=contract_id, value=raw.value)
        return ContractIngestResult(company_id, contract_id, resolved.match_type.value, created)

    def ingest_many(self, contracts: Iterable[ContractInput], now: Optional[datetime] = None) -> Dict[str, int]:
        counts = {"fetched": 0, "created": 0, "existing": 0, "skipped": 0, "errored": 0}
        for raw in contracts:
            counts["fetched"] += 1
            try:
                result = self.ingest_contract(raw, now)
            except DataQualityError as e:
                counts["skipped"] += 1
                self.logger.record_skip("data_quality")
                self.logger.warning("Skipped contract", errors=e.errors)
                continue
            except Exception as e:
                counts["errored"] += 1
                self.logger.record_error(type(e).__name__)
                self.logger.error("Contract ingest failed", error=str(e))
                continue
            counts["created" if result.created else "existing"] += 1
        return counts

    def reconcile_contract_signals(self, now: Optional[datetime] = None) -> ReconcileStats:
        """
        Emit, upgrade or resolve contract no-hiring signals for recent large awards.

        Windows already elapsed get their posting counts recorded on the award.
        Awards that aged out of the lookback still have their open signals resolved.
        """
        now = now or datetime.now()
        stats = ReconcileStats()
        since = now.date() - timedelta(days=self.config.contract_lookback_days)

        with session_scope(self.pipeline.factory) as session:
            awards = repo.contracts_awarded_since(session, since, self.config.contract_min_value)
            awards += repo.contracts_with_active_signals(session)
            candidates = list(dict.fromkeys((award.id, award.company_id) for award in awards))

        touched: List[str] = []
        for contract_id, company_id in candidates:
            stats.contracts_checked += 1
            try:
                changed = self._reconcile_one(contract_id, company_id, since, now, stats)
            except Exception as e:
                stats.errored += 1
                self.logger.record_error(type(e).__name__)
                self.logger.error("Contract reconciliation failed", contract_id=contract_id, error=str(e))
                continue
            if changed and company_id not in touched:
                touched.append(company_id)

        for company_id in touched:
            self.pipeline.recalculate_score(company_id, now)
            stats.companies_rescored += 1

        self.logger.record_signals(emitted=stats.signals_emitted, resolved=stats.signals_resolved)
        self.logger.info("Contract reconciliation complete", **stats.as_dict())
        return stats

    def _reconcile_one(self, contract_id: str, company_id: str, since: date, now: datetime,
                       stats: ReconcileStats) -> bool:
        first, second = self.config.contract_windows
        with self.pipeline.company_locks.hold(company_id):
            with session_scope(self.pipeline.factory) as session:
                award = session.get(ContractAward, contract_id)
                company = repo.get_company(session, company_id)
                if award is None or company is None:
                    raise InvariantViolation(f"Contract {contract_id} or its company is missing")

                if award.award_date < since:
                    # Past the lookback: the award is no longer a live lead
                    changes = self.pipeline.generator.resolve_family(
                        session, company_id, SignalFamily.CONTRACT, now, contract=award
                    )
                    stats.signals_resolved += len(changes.resolved)
                    return changes.changed

                days_since_award = max(0, (now.date() - award.award_date).days)
                job_count = repo.count_postings_since(session, company_id, award.award_date)
                if days_since_award >= first:
                    award.jobs_posted_within_30_days = job_count
                if days_since_award >= second:
                    award.jobs_posted_within_60_days = job_count

                if job_count == 0:
                    changes = self.pipeline.generator.apply_contract(session, company, award, days_since_award, now)
                    if changes.emitted:
                        award.hiring_bottleneck_flag = True
                        stats.bottlenecks += 1
                else:
                    changes = self.pipeline.generator.resolve_family(
                        session, company_id, SignalFamily.CONTRACT, now, contract=award
                    )
                    award.hiring_bottleneck_flag = False

                award.updated_at = now
                stats.signals_emitted += len(changes.emitted)
                stats.signals_resolved += len(changes.resolved)
                return changes.changed
