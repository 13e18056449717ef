"""
Company identity resolution.

Strategies run in strict priority order and the first hit wins:
exact domain, exact registry number, exact normalized name, fuzzy name,
and finally creation of a new company. Only creation writes.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from . import repository as repo
from .config import EngineConfig
from .database import Company
from .errors import DataQualityError, InvariantViolation
from .logger import get_logger
from .normalize import (
    name_tokens,
    normalize_company_name,
    normalize_domain,
    normalize_registry_number,
    similarity,
)


class MatchType(str, Enum):
    EXACT_DOMAIN = "exact_domain"
    EXACT_REGISTRY = "exact_registry"
    EXACT_NAME = "exact_name"
    FUZZY_NAME = "fuzzy_name"
    NEW = "new"


@dataclass(frozen=True)
class CompanyObservation:
    name: str
    domain: Optional[str] = None
    registry_number: Optional[str] = None
    location: Optional[str] = None
    industry: Optional[str] = None


@dataclass(frozen=True)
class ResolveResult:
    company: Company
    match_type: MatchType
    confidence: float

    @property
    def created(self) -> bool:
        return self.match_type == MatchType.NEW


class CompanyResolver:
    """Maps a raw company observation onto one canonical Company row."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.logger = get_logger()

    def resolve(self, session: Session, observation: CompanyObservation,
                now: Optional[datetime] = None) -> ResolveResult:
        normalized = normalize_company_name(observation.name)
        if not normalized:
            raise DataQualityError([f"Company name is empty after normalization: {observation.name!r}"])

        domain = normalize_domain(observation.domain)
        registry_number = normalize_registry_number(observation.registry_number)

        found = self._match_identifier(session, domain, registry_number)
        if found is None:
            company = repo.find_company_by_normalized_name(session, normalized)
            if company is not None:
                found = ResolveResult(company, MatchType.EXACT_NAME, 100.0)
        if found is None:
            found = self._match_fuzzy(session, normalized)

        if found is not None:
            return found

        return self._create(session, observation, normalized, domain, registry_number,
                            now or datetime.now())

    def _match_identifier(self, session: Session, domain: Optional[str],
                          registry_number: Optional[str]) -> Optional[ResolveResult]:
        if domain:
            company = repo.find_company_by_domain(session, domain)
            if company is not None:
                return ResolveResult(company, MatchType.EXACT_DOMAIN, 100.0)
        if registry_number:
            company = repo.find_company_by_registry_number(session, registry_number)
            if company is not None:
                return ResolveResult(company, MatchType.EXACT_REGISTRY, 100.0)
        return None

    def _match_fuzzy(self, session: Session, normalized: str) -> Optional[ResolveResult]:
        candidates = repo.find_company_candidates(
            session, name_tokens(normalized), self.config.fuzzy_candidate_limit
        )
        best = self.best_fuzzy_candidate(normalized, candidates)
        if best is None:
            return None
        company, score = best
        if score < self.config.fuzzy_match_threshold:
            self.logger.debug(
                "Fuzzy candidate below threshold",
                name=normalized, candidate=company.name_normalized, similarity=round(score, 2),
            )
            return None
        return ResolveResult(company, MatchType.FUZZY_NAME, score)

    @staticmethod
    def best_fuzzy_candidate(normalized: str, candidates: List[Company]) -> Optional[Tuple[Company, float]]:
        """Highest similarity wins; ties go to the oldest company."""
        best: Optional[Tuple[Company, float]] = None
        for company in sorted(candidates, key=lambda c: (c.created_at or datetime.min, c.id)):
            score = similarity(normalized, company.name_normalized)
            if best is None or score > best[1]:
                best = (company, score)
        return best

    def _create(self, session: Session, observation: CompanyObservation, normalized: str,
                domain: Optional[str], registry_number: Optional[str], now: datetime) -> ResolveResult:
        company = Company(
            name=observation.name.strip(),
            name_normalized=normalized,
            domain=domain,
            registry_number=registry_number,
            industry=observation.industry,
            region=observation.location or None,
            hiring_pain_score=0,
            first_seen_at=now,
            last_activity_at=now,
            created_at=now,
            updated_at=now,
        )
        if repo.insert_company(session, company, name_tokens(normalized)):
            self.logger.info("Created company", company_id=company.id, name=company.name)
            return ResolveResult(company, MatchType.NEW, 100.0)

        # Lost a race on domain or registry number: the winner is the match
        found = self._match_identifier(session, domain, registry_number)
        if found is None:
            raise InvariantViolation(f"Company insert conflicted but no owner found for {observation.name!r}")
        return found
