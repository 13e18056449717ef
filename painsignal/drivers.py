"""
Periodic ingestion driver.

Thin orchestration: pull raw observations from providers while the daily
budgets last, push them through the shared pipeline, reconcile contract
signals, then run the maintenance sweep. Queries left over once a
budget is spent are deferred to the next run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from .cleanup import MaintenanceSweep, SweepStats
from .contracts import ContractService, ReconcileStats
from .pipeline import BatchStats, Pipeline
from .providers import ContractsFinderProvider, ReedProvider


@dataclass(frozen=True)
class JobQuery:
    keywords: str
    location: str
    posted_within: int = 7


@dataclass
class DriverStats:
    queries_run: int = 0
    queries_deferred: int = 0
    agency_filtered: int = 0
    jobs: BatchStats = field(default_factory=BatchStats)
    contracts: dict = field(default_factory=dict)
    reconcile: Optional[ReconcileStats] = None
    sweep: Optional[SweepStats] = None
    deferred: List[JobQuery] = field(default_factory=list)


class IngestionDriver:
    def __init__(
        self,
        pipeline: Pipeline,
        reed: Optional[ReedProvider] = None,
        contracts: Optional[ContractsFinderProvider] = None,
        max_results_per_query: int = 200,
    ):
        self.pipeline = pipeline
        self.reed = reed
        self.contracts = contracts
        self.max_results_per_query = max_results_per_query
        self.contract_service = ContractService(pipeline)
        self.sweep = MaintenanceSweep(pipeline)
        self.logger = pipeline.logger

    def run(self, queries: Iterable[JobQuery], contract_days_back: int = 1,
            now: Optional[datetime] = None) -> DriverStats:
        now = now or datetime.now()
        stats = DriverStats()
        observations = []

        pending = list(queries)
        if self.reed is None and pending:
            self.logger.warning("No job provider configured, skipping job queries", queries=len(pending))
            pending = []

        for index, query in enumerate(pending):
            if self.reed.budget_exhausted:
                stats.deferred = pending[index:]
                break
            observations.extend(self.reed.search(
                query.keywords, query.location,
                posted_within=query.posted_within,
                max_results=self.max_results_per_query,
            ))
            stats.queries_run += 1
        stats.queries_deferred = len(stats.deferred)
        if self.reed is not None:
            stats.agency_filtered = self.reed.agency_filtered
        if stats.deferred:
            self.logger.warning("Deferred queries to next run", deferred=stats.queries_deferred)

        stats.jobs = self.pipeline.run_batch(observations, now)

        if self.contracts is not None:
            awards = self.contracts.fetch_awards(days_back=contract_days_back, today=now.date())
            stats.contracts = self.contract_service.ingest_many(awards, now)
        stats.reconcile = self.contract_service.reconcile_contract_signals(now)
        stats.sweep = self.sweep.run_maintenance(now)

        self.logger.log_metrics_summary()
        return stats
