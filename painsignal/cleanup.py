"""
Maintenance sweep.

Flips postings that have not been seen for the inactivity window,
resolves the signals those postings carried, and re-evaluates the
staleness family of every still-active posting against real refresh
gaps. Company scores are recomputed for each company touched.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from . import repository as repo
from .database import session_scope
from .lifecycle import days_between
from .pipeline import Pipeline


@dataclass
class SweepStats:
    postings_deactivated: int = 0
    signals_resolved: int = 0
    signals_emitted: int = 0
    companies_rescored: int = 0
    errored: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class MaintenanceSweep:
    def __init__(self, pipeline: Pipeline):
        self.pipeline = pipeline
        self.config = pipeline.config
        self.logger = pipeline.logger

    def mark_stale_postings(self, now: Optional[datetime] = None) -> List[str]:
        """Deactivate postings unseen for longer than the inactivity window."""
        now = now or datetime.now()
        cutoff = now - timedelta(days=self.config.inactive_after_days)
        with session_scope(self.pipeline.factory) as session:
            ids = repo.deactivate_postings_unseen_since(session, cutoff, now)
        if ids:
            self.logger.info("Deactivated stale postings", count=len(ids), cutoff=cutoff)
        return ids

    def resolve_inactive_signals(self, now: Optional[datetime] = None, stats: Optional[SweepStats] = None) -> int:
        """Resolve every active signal sourced from an inactive posting."""
        now = now or datetime.now()
        stats = stats or SweepStats()
        with session_scope(self.pipeline.factory) as session:
            company_ids = sorted({s.company_id for s in repo.active_signals_for_inactive_postings(session)})

        resolved = 0
        for company_id in company_ids:
            try:
                with self.pipeline.company_locks.hold(company_id):
                    with session_scope(self.pipeline.factory) as session:
                        signals = repo.active_signals_for_inactive_postings(session, company_id)
                        for signal in signals:
                            repo.resolve_signal(session, signal, now)
                        self.pipeline.aggregator.recalculate(session, company_id, now)
            except Exception as e:
                stats.errored += 1
                self.logger.record_error(type(e).__name__)
                self.logger.error("Failed to resolve signals", company_id=company_id, error=str(e))
                continue
            resolved += len(signals)
            stats.companies_rescored += 1

        stats.signals_resolved += resolved
        self.logger.record_signals(resolved=resolved)
        return resolved

    def refresh_posting_signals(self, now: Optional[datetime] = None, stats: Optional[SweepStats] = None) -> int:
        """Re-classify active postings with their actual days since last refresh."""
        now = now or datetime.now()
        stats = stats or SweepStats()
        with session_scope(self.pipeline.factory) as session:
            company_ids = repo.companies_with_active_postings(session)

        changed_total = 0
        for company_id in company_ids:
            try:
                with self.pipeline.company_locks.hold(company_id):
                    with session_scope(self.pipeline.factory) as session:
                        company = repo.get_company(session, company_id)
                        emitted = resolved = 0
                        for posting in repo.active_postings(session, company_id):
                            changes = self.pipeline.generator.apply_staleness(
                                session, company, posting,
                                days_between(posting.original_posted_date, now),
                                days_between(posting.last_seen_at.date(), now),
                                now,
                            )
                            emitted += len(changes.emitted)
                            resolved += len(changes.resolved)
                        if emitted or resolved:
                            self.pipeline.aggregator.recalculate(session, company_id, now)
            except Exception as e:
                stats.errored += 1
                self.logger.record_error(type(e).__name__)
                self.logger.error("Failed to refresh signals", company_id=company_id, error=str(e))
                continue
            if emitted or resolved:
                stats.companies_rescored += 1
                changed_total += emitted + resolved
            stats.signals_emitted += emitted
            stats.signals_resolved += resolved
            self.logger.record_signals(emitted=emitted, resolved=resolved)

        return changed_total

    def run_maintenance(self, now: Optional[datetime] = None) -> SweepStats:
        now = now or datetime.now()
        stats = SweepStats()
        stats.postings_deactivated = len(self.mark_stale_postings(now))
        self.resolve_inactive_signals(now, stats)
        self.refresh_posting_signals(now, stats)
        self.logger.info("Maintenance sweep complete", **stats.as_dict())
        return stats
