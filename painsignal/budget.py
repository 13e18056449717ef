"""
Per-provider daily call budgets.

The counter lives in the database so separate driver processes share one
budget. Each acquisition is its own short transaction.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import sessionmaker

from . import repository as repo
from .database import session_scope
from .errors import BudgetExhaustedError
from .logger import get_logger


class ProviderBudget:
    def __init__(self, factory: sessionmaker, provider: str, daily_limit: int):
        self.factory = factory
        self.provider = provider
        self.daily_limit = daily_limit
        self.logger = get_logger()

    def try_acquire(self, today: Optional[date] = None) -> bool:
        """Take one call from today's budget; False once it is spent."""
        today = today or datetime.now().date()
        with session_scope(self.factory) as session:
            count = repo.increment_api_usage(session, self.provider, today, self.daily_limit)
        if count is None:
            self.logger.warning("Provider budget exhausted", provider=self.provider, limit=self.daily_limit)
            return False
        return True

    def acquire(self, today: Optional[date] = None) -> None:
        if not self.try_acquire(today):
            raise BudgetExhaustedError(self.provider)

    def used(self, today: Optional[date] = None) -> int:
        today = today or datetime.now().date()
        with session_scope(self.factory) as session:
            return repo.api_usage_count(session, self.provider, today)

    def remaining(self, today: Optional[date] = None) -> int:
        return max(0, self.daily_limit - self.used(today))
