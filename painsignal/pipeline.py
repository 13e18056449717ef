"""
Ingestion pipeline.

One observation flows Normalizer -> Resolver -> Lifecycle Tracker ->
Signal Generator -> Score Aggregator. Every driver (job feeds, contract
feeds, the maintenance sweep) goes through this class so the logic lives
in one place.

Locking: a keyed lock is always taken before the database transaction
starts and only one keyed lock is held at a time, so workers cannot
deadlock against the SQLite write lock.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import repository as repo
from .config import EngineConfig, Settings
from .database import get_session_factory, init_database, session_scope
from .errors import DataQualityError, InvariantViolation
from .lifecycle import JobLifecycleTracker
from .locks import KeyedLock
from .logger import get_logger
from .normalize import normalize_company_name
from .resolver import CompanyObservation, CompanyResolver, ResolveResult
from .retry import is_transient_error
from .schema import RawPosting, parse_posting
from .scoring import ScoreAggregator
from .signals import SignalGenerator

Observation = Union[RawPosting, Dict[str, Any]]


@dataclass
class IngestResult:
    company_id: str
    match_type: str
    posting_id: str
    posting_transition: str
    signals_emitted: List[str] = field(default_factory=list)
    signals_resolved: List[str] = field(default_factory=list)
    score: int = 0


@dataclass
class BatchStats:
    fetched: int = 0
    companies_created: int = 0
    created: int = 0
    updated: int = 0
    reposted: int = 0
    signals_emitted: int = 0
    signals_resolved: int = 0
    skipped: int = 0
    errored: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, result: IngestResult) -> None:
        if result.match_type == "new":
            self.companies_created += 1
        if result.posting_transition == "new":
            self.created += 1
        elif result.posting_transition == "reposted":
            self.reposted += 1
        else:
            self.updated += 1
        self.signals_emitted += len(result.signals_emitted)
        self.signals_resolved += len(result.signals_resolved)

    def as_dict(self) -> dict:
        data = asdict(self)
        data.pop("errors")
        return data


class Pipeline:
    def __init__(
        self,
        factory: sessionmaker,
        config: Optional[EngineConfig] = None,
        max_workers: int = 4,
    ):
        self.factory = factory
        self.config = config or EngineConfig()
        self.max_workers = max(1, max_workers)
        self.resolver = CompanyResolver(self.config)
        self.tracker = JobLifecycleTracker(self.config)
        self.generator = SignalGenerator(self.config)
        self.aggregator = ScoreAggregator(self.config)
        self.name_locks = KeyedLock()
        self.company_locks = KeyedLock()
        self.logger = get_logger()

    @classmethod
    def from_settings(cls, settings: Settings, config: Optional[EngineConfig] = None) -> "Pipeline":
        init_database(settings.db_path)
        return cls(get_session_factory(settings.db_path), config, settings.max_workers)

    @classmethod
    def for_database(cls, db: Union[Path, str], config: Optional[EngineConfig] = None,
                     max_workers: int = 4) -> "Pipeline":
        init_database(db)
        return cls(get_session_factory(db), config, max_workers)

    def resolve_company(self, observation: CompanyObservation,
                        now: Optional[datetime] = None) -> ResolveResult:
        """Resolve (or create) a company in its own short transaction."""
        key = normalize_company_name(observation.name)
        with self.name_locks.hold(key):
            with session_scope(self.factory) as session:
                return self.resolver.resolve(session, observation, now)

    def ingest_observation(self, raw: Observation, now: Optional[datetime] = None) -> IngestResult:
        """
        Process one job observation end to end.

        Idempotent: the same raw posting ingested twice yields one posting
        and no duplicate signals.

        Raises:
            DataQualityError: raw payload unusable
            InvariantViolation: resolved company vanished mid-flight
        """
        if not isinstance(raw, RawPosting):
            raw = parse_posting(raw)
        now = now or datetime.now()

        resolved = self.resolve_company(
            CompanyObservation(
                name=raw.company_name,
                domain=raw.domain,
                registry_number=raw.registry_number,
                location=raw.location or None,
                industry=raw.industry,
            ),
            now,
        )
        company_id = resolved.company.id

        with self.company_locks.hold(company_id):
            with session_scope(self.factory) as session:
                company = repo.get_company(session, company_id)
                if company is None:
                    raise InvariantViolation(f"Resolved company {company_id} not found")
                lifecycle = self.tracker.observe(session, company, raw, now)
                changes = self.generator.generate(session, company, lifecycle, now)
                score = self.aggregator.recalculate(session, company_id, now)
                posting_id = lifecycle.posting.id

        self.logger.record_observation(lifecycle.transition.value, company_created=resolved.created)
        self.logger.record_signals(emitted=len(changes.emitted), resolved=len(changes.resolved))
        self.logger.debug(
            "Ingested observation",
            company_id=company_id,
            match=resolved.match_type.value,
            transition=lifecycle.transition.value,
            emitted=[s.signal_type for s in changes.emitted],
            score=score,
        )
        return IngestResult(
            company_id=company_id,
            match_type=resolved.match_type.value,
            posting_id=posting_id,
            posting_transition=lifecycle.transition.value,
            signals_emitted=[s.signal_type for s in changes.emitted],
            signals_resolved=[s.signal_type for s in changes.resolved],
            score=score,
        )

    def recalculate_score(self, company_id: str, now: Optional[datetime] = None) -> int:
        with self.company_locks.hold(company_id):
            with session_scope(self.factory) as session:
                if repo.get_company(session, company_id) is None:
                    raise InvariantViolation(f"Unknown company {company_id}")
                return self.aggregator.recalculate(session, company_id, now)

    def run_batch(self, observations: Iterable[Observation], now: Optional[datetime] = None) -> BatchStats:
        """
        Ingest many observations on a bounded worker pool.

        A failing observation is counted and logged; it never aborts the batch.
        """
        items = list(observations)
        stats = BatchStats(fetched=len(items))
        if not items:
            return stats

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ingest") as pool:
            futures = {pool.submit(self.ingest_observation, item, now): i for i, item in enumerate(items)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    stats.add(future.result())
                except DataQualityError as e:
                    stats.skipped += 1
                    self.logger.record_skip("data_quality")
                    self.logger.warning("Skipped observation", index=index, errors=e.errors)
                except (InvariantViolation, SQLAlchemyError) as e:
                    stats.errored += 1
                    stats.errors.append(f"{index}: {e}")
                    self.logger.record_error(type(e).__name__)
                    self.logger.error(
                        "Observation failed",
                        index=index, error=str(e), transient=is_transient_error(e),
                    )
                except Exception as e:
                    stats.errored += 1
                    stats.errors.append(f"{index}: {e}")
                    self.logger.record_error(type(e).__name__)
                    self.logger.error("Unexpected error processing observation", index=index, error=str(e))

        self.logger.info("Batch complete", **stats.as_dict())
        return stats
