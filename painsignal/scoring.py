"""Company pain score aggregation: capped sum over active signals, always recomputed in full."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from . import repository as repo
from .config import EngineConfig


class ScoreAggregator:
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def recalculate(self, session: Session, company_id: str, now: Optional[datetime] = None) -> int:
        total = repo.sum_active_contributions(session, company_id)
        score = max(0, min(self.config.score_cap, total))
        repo.overwrite_pain_score(session, company_id, score, now or datetime.now())
        return score
