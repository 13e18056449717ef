"""
Database schema and connection management.

Uses SQLAlchemy; SQLite by default. SQLite transactions start with
BEGIN IMMEDIATE so concurrent workers queue on the write lock (bounded by
the busy timeout) instead of failing on lock upgrades.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, Union
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()

SQLITE_BUSY_TIMEOUT = 30


def _uuid() -> str:
    return str(uuid4())


class Company(Base):
    """Canonical company identity."""

    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    name_normalized = Column(String, nullable=False, index=True)
    domain = Column(String, unique=True)
    registry_number = Column(String, unique=True)  # e.g. Companies House number
    industry = Column(String)
    region = Column(String)
    hiring_pain_score = Column(Integer, nullable=False, default=0)
    pain_score_updated_at = Column(DateTime)
    first_seen_at = Column(DateTime, nullable=False, default=datetime.now)
    last_activity_at = Column(DateTime, nullable=False, default=datetime.now)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class CompanyNameToken(Base):
    """Precomputed name tokens used to narrow fuzzy-match candidates."""

    __tablename__ = "company_name_tokens"
    __table_args__ = (UniqueConstraint("company_id", "token"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False)
    token = Column(String, nullable=False, index=True)


class JobPosting(Base):
    """One observed advert for a role at a company."""

    __tablename__ = "job_postings"
    __table_args__ = (
        Index("ix_job_postings_company_active", "company_id", "is_active", "last_seen_at"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    fingerprint = Column(String(32), nullable=False, unique=True)
    title = Column(String, nullable=False)
    title_normalized = Column(String, nullable=False)
    location = Column(String)
    location_normalized = Column(String)
    salary_min = Column(Integer)  # annual
    salary_max = Column(Integer)  # annual
    salary_type = Column(String)
    industry = Column(String)
    source = Column(String, nullable=False)
    source_id = Column(String)
    source_url = Column(String)
    original_posted_date = Column(Date, nullable=False)
    first_seen_at = Column(DateTime, nullable=False, default=datetime.now)
    last_seen_at = Column(DateTime, nullable=False, default=datetime.now)
    is_active = Column(Boolean, nullable=False, default=True)
    repost_count = Column(Integer, nullable=False, default=0)
    previous_posting_id = Column(String(36), ForeignKey("job_postings.id"))
    salary_increase_from_previous = Column(Integer)  # percent; NULL = unknown
    mentions_referral_bonus = Column(Boolean, nullable=False, default=False)
    referral_bonus_amount = Column(Integer)
    raw_description = Column(Text)
    employer_name_from_source = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class JobObservation(Base):
    """Append-only log of each sighting of a posting."""

    __tablename__ = "job_observations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_posting_id = Column(String(36), ForeignKey("job_postings.id"), nullable=False, index=True)
    observed_at = Column(DateTime, nullable=False, default=datetime.now)
    salary_min = Column(Integer)
    salary_max = Column(Integer)
    was_active = Column(Boolean, nullable=False, default=True)


class ContractAward(Base):
    """Public contract awarded to a company."""

    __tablename__ = "contract_awards"
    __table_args__ = (UniqueConstraint("source", "source_ref"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    source = Column(String, nullable=False)
    source_ref = Column(String, nullable=False)
    title = Column(String, nullable=False, default="")
    description = Column(Text)
    value_gbp = Column(Float)
    buyer_organisation = Column(String)
    award_date = Column(Date, nullable=False, index=True)
    region = Column(String)
    source_url = Column(String)
    jobs_posted_within_30_days = Column(Integer)
    jobs_posted_within_60_days = Column(Integer)
    hiring_bottleneck_flag = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class PainSignal(Base):
    """Typed, closable observation of hiring difficulty."""

    __tablename__ = "company_pain_signals"
    __table_args__ = (
        Index("ix_pain_signals_company_active", "company_id", "is_active"),
        Index("ix_pain_signals_posting_family", "source_job_posting_id", "signal_family", "is_active"),
        Index("ix_pain_signals_contract_family", "source_contract_id", "signal_family", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False)
    signal_type = Column(String, nullable=False)
    signal_family = Column(String, nullable=False)
    source_job_posting_id = Column(String(36), ForeignKey("job_postings.id"))
    source_contract_id = Column(String(36), ForeignKey("contract_awards.id"))
    signal_title = Column(String, nullable=False)
    signal_detail = Column(Text)
    signal_value = Column(Integer)
    days_since_refresh = Column(Integer)
    pain_score_contribution = Column(Integer, nullable=False)
    confidence = Column(Integer)
    urgency = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    detected_at = Column(DateTime, nullable=False, default=datetime.now)
    resolved_at = Column(DateTime)


class ApiUsage(Base):
    """Calls made to one provider on one day."""

    __tablename__ = "api_usage"
    __table_args__ = (UniqueConstraint("provider", "usage_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String, nullable=False)
    usage_date = Column(Date, nullable=False)
    call_count = Column(Integer, nullable=False, default=0)


_engines: Dict[str, Engine] = {}
_engines_lock = threading.Lock()


def _database_url(db: Union[Path, str]) -> str:
    if isinstance(db, str) and "://" in db:
        return db
    return f"sqlite:///{Path(db)}"


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine(db: Union[Path, str]) -> Engine:
    """Return the shared engine for a database path or URL."""
    url = _database_url(db)
    with _engines_lock:
        engine = _engines.get(url)
        if engine is None:
            if url.startswith("sqlite"):
                engine = create_engine(
                    url,
                    connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
                )
                _configure_sqlite(engine)
            else:
                engine = create_engine(url, pool_pre_ping=True)
            _engines[url] = engine
        return engine


def init_database(db: Union[Path, str]) -> Engine:
    """
    Initialize database and create tables.

    Args:
        db: Path to SQLite database file, or a database URL
    """
    if not (isinstance(db, str) and "://" in db):
        Path(db).parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(db: Union[Path, str]) -> sessionmaker:
    return sessionmaker(bind=get_engine(db), expire_on_commit=False)


def get_session(db: Union[Path, str]) -> Session:
    """
    Get database session.

    Args:
        db: Path to SQLite database file, or a database URL

    Returns:
        SQLAlchemy session
    """
    return get_session_factory(db)()


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Transactional scope: commit on success, roll back on any error."""
    session = factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    """Close pooled connections of every engine (tests, process shutdown)."""
    with _engines_lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()
