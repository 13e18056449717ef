"""
Error taxonomy for the ingestion pipeline.

Transient provider errors and data-quality errors never abort a batch;
invariant violations abort a single observation. Persistence conflicts
are not errors at all: the repository re-reads the winning row.
"""

from typing import List, Optional


class PainSignalError(Exception):
    """Base error for the engine."""


class DataQualityError(PainSignalError):
    """Raised when a raw observation is unusable (missing name, bad date)."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid observation")


class TransientProviderError(PainSignalError):
    """Raised when an external provider call fails but may succeed later."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        super().__init__(f"{provider}: {message}")


class BudgetExhaustedError(PainSignalError):
    """Raised when a provider's daily call budget has been spent."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Daily budget exhausted for provider '{provider}'")


class InvariantViolation(PainSignalError):
    """Raised when the pipeline reaches a state it must never be in."""
