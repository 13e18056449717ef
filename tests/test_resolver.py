"""
Tests for company identity resolution.
"""

import pytest

from painsignal import repository as repo
from painsignal.database import Company, CompanyNameToken, session_scope
from painsignal.errors import DataQualityError
from painsignal.resolver import CompanyObservation, CompanyResolver, MatchType


@pytest.fixture
def resolver():
    return CompanyResolver()


@pytest.fixture
def resolve(session_factory, resolver, day):
    """Resolve one observation in its own committed transaction."""
    def _resolve(name, **kwargs):
        with session_scope(session_factory) as session:
            result = resolver.resolve(session, CompanyObservation(name=name, **kwargs), now=day(0))
            return result.company.id, result.match_type, result.confidence
    return _resolve


def company_count(session_factory):
    with session_scope(session_factory) as session:
        return session.query(Company).count()


class TestStrategyOrder:
    """Each strategy is tried in priority order and the first hit wins."""

    def test_unknown_company_created(self, resolve, session_factory):
        """An unseen name creates a company with full confidence."""
        company_id, match, confidence = resolve("Northfield Construction Ltd")
        assert match == MatchType.NEW
        assert confidence == 100.0
        with session_scope(session_factory) as session:
            company = repo.get_company(session, company_id)
            assert company.name_normalized == "northfield construction"
            assert company.hiring_pain_score == 0
            tokens = {t.token for t in session.query(CompanyNameToken).filter_by(company_id=company_id)}
            assert tokens == {"northfield", "construction"}

    def test_same_name_resolves_to_same_company(self, resolve, session_factory):
        """Case and legal suffix differences resolve to one company."""
        first, _, _ = resolve("Northfield Construction Ltd")
        second, match, _ = resolve("NORTHFIELD CONSTRUCTION LIMITED")
        assert second == first
        assert match == MatchType.EXACT_NAME
        assert company_count(session_factory) == 1

    def test_domain_beats_name(self, resolve):
        """A known domain identifies the company even under a different trading name."""
        first, _, _ = resolve("Northfield Construction Ltd", domain="northfield.co.uk")
        second, match, _ = resolve("NCL Build", domain="https://www.northfield.co.uk/careers")
        assert second == first
        assert match == MatchType.EXACT_DOMAIN

    def test_registry_number_match(self, resolve):
        """A registry number matches regardless of spacing."""
        first, _, _ = resolve("Northfield Construction Ltd", registry_number="01234567")
        second, match, _ = resolve("Northfield Homes", registry_number=" 0123 4567")
        assert second == first
        assert match == MatchType.EXACT_REGISTRY

    def test_name_match_leaves_identifiers_unset(self, resolve, session_factory):
        """Matching by name never writes the observation's identifiers onto the company."""
        company_id, _, _ = resolve("Northfield Construction Ltd")
        second, match, _ = resolve("Northfield Construction", domain="northfield.co.uk", registry_number="01234567")
        assert (second, match) == (company_id, MatchType.EXACT_NAME)
        with session_scope(session_factory) as session:
            company = repo.get_company(session, company_id)
            assert company.domain is None
            assert company.registry_number is None

    def test_fuzzy_match_does_not_claim_domain(self, resolve, session_factory):
        """A fuzzy hit cannot route later observations of that domain to the matched company."""
        first, _, _ = resolve("Northfield Construction")
        second, match, confidence = resolve("Northfields Construction", domain="other-firm.com")
        assert (second, match) == (first, MatchType.FUZZY_NAME)
        assert confidence < 100.0

        third, match, _ = resolve("Other Firm Ltd", domain="other-firm.com")
        assert third != first
        assert match == MatchType.NEW
        with session_scope(session_factory) as session:
            assert repo.get_company(session, first).domain is None
            assert repo.get_company(session, third).domain == "other-firm.com"

    def test_empty_name_rejected(self, resolve, session_factory):
        """A name that is only a legal suffix is rejected without creating anything."""
        with pytest.raises(DataQualityError):
            resolve("Ltd.")
        assert company_count(session_factory) == 0


class TestFuzzyMatching:
    """The fuzzy threshold is inclusive at 85."""

    def test_similarity_at_threshold_matches(self, resolve, session_factory):
        """A similarity exactly at the threshold is a fuzzy match."""
        first, _, _ = resolve("Brightwater Building Ltd")
        second, match, confidence = resolve("Brightwaabc Building Ltd")
        assert second == first
        assert match == MatchType.FUZZY_NAME
        assert confidence == 85.0
        assert company_count(session_factory) == 1

    def test_similarity_below_threshold_creates(self, resolve, session_factory):
        """A similarity under the threshold creates a new company."""
        first, _, _ = resolve("Northgate Civil Engineers Ltd")
        second, match, _ = resolve("Northwxyz Civil Engineers Ltd")
        assert second != first
        assert match == MatchType.NEW
        assert company_count(session_factory) == 2

    def test_no_shared_tokens_no_candidates(self, resolve, session_factory):
        """Names with no token in common are never compared."""
        resolve("Northfield Construction Ltd")
        _, match, _ = resolve("Harbour Dental Practice")
        assert match == MatchType.NEW

    def test_tie_goes_to_oldest(self, day):
        """Equal scores resolve to the earliest created company."""
        newer = Company(id="b", name_normalized="acme build", created_at=day(5))
        older = Company(id="a", name_normalized="acme build", created_at=day(1))
        company, score = CompanyResolver.best_fuzzy_candidate("acme build", [newer, older])
        assert company is older
        assert score == 100.0

    def test_raised_threshold_rejects(self, session_factory, day):
        """A stricter threshold turns a fuzzy match into a new company."""
        from painsignal.config import EngineConfig

        strict = CompanyResolver(EngineConfig(fuzzy_match_threshold=90.0))
        with session_scope(session_factory) as session:
            strict.resolve(session, CompanyObservation("Brightwater Building"), now=day(0))
        with session_scope(session_factory) as session:
            result = strict.resolve(session, CompanyObservation("Brightwaabc Building"), now=day(0))
            assert result.created
