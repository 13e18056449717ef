"""
Engine configuration.

EngineConfig is an immutable value handed to each component at
construction; nothing reads thresholds from module globals. Settings holds
the runtime knobs that come from the environment (.env is loaded first).
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .taxonomy import DEFAULT_SIGNAL_TABLE, SignalSpec, SignalType


@dataclass(frozen=True)
class EngineConfig:
    signal_table: Mapping[SignalType, SignalSpec] = field(default_factory=lambda: DEFAULT_SIGNAL_TABLE)

    # Identity resolution
    fuzzy_match_threshold: float = 85.0
    fuzzy_candidate_limit: int = 50

    # Job lifecycle
    title_similarity_threshold: float = 85.0
    repost_search_window: int = 10
    refresh_threshold_days: int = 14
    day_buckets: Tuple[int, int, int] = (30, 60, 90)
    inactive_after_days: int = 21

    # Scoring
    score_cap: int = 100
    salary_tiers: Tuple[int, int] = (10, 20)

    # Contract awards
    contract_min_value: float = 500_000
    contract_lookback_days: int = 90
    contract_windows: Tuple[int, int] = (30, 60)

    def __post_init__(self):
        missing = [t.value for t in SignalType if t not in self.signal_table]
        if missing:
            raise ValueError(f"Signal table missing types: {', '.join(missing)}")
        if not isinstance(self.signal_table, MappingProxyType):
            object.__setattr__(self, "signal_table", MappingProxyType(dict(self.signal_table)))

    def spec_for(self, signal_type: SignalType) -> SignalSpec:
        return self.signal_table[signal_type]

    def with_overrides(self, **changes) -> "EngineConfig":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    db_path: Path = Path("data/painsignal.db")
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    max_workers: int = 4
    provider_timeout: float = 15.0
    reed_api_key: Optional[str] = None
    reed_daily_budget: int = 100
    contracts_daily_budget: int = 500

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from PAINSIGNAL_* environment variables."""
        return cls(
            db_path=Path(os.getenv("PAINSIGNAL_DB_PATH", "data/painsignal.db")),
            log_level=os.getenv("PAINSIGNAL_LOG_LEVEL", "INFO"),
            log_dir=Path(os.getenv("PAINSIGNAL_LOG_DIR", "logs")),
            max_workers=max(1, _env_int("PAINSIGNAL_MAX_WORKERS", 4)),
            provider_timeout=_env_float("PAINSIGNAL_PROVIDER_TIMEOUT", 15.0),
            reed_api_key=os.getenv("REED_API_KEY") or None,
            reed_daily_budget=_env_int("PAINSIGNAL_REED_DAILY_BUDGET", 100),
            contracts_daily_budget=_env_int("PAINSIGNAL_CONTRACTS_DAILY_BUDGET", 500),
        )
