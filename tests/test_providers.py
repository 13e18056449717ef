"""
Tests for the Reed and Contracts Finder adapters.

HTTP is replaced by a mocked requests session; nothing touches the network.
"""

from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from painsignal.database import PainSignal, session_scope
from painsignal.providers import ContractsFinderProvider, ProviderClient, ReedProvider, is_recruitment_agency
from painsignal.providers.contracts_finder import parse_release
from painsignal.providers.reed import REED_API_URL, to_raw_posting
from painsignal.retry import CircuitBreaker


def json_response(payload):
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def http_error(status):
    resp = requests.Response()
    resp.status_code = status
    resp.url = REED_API_URL
    return resp


def reed_results(n, employer="Northfield Construction Ltd"):
    return [
        {"jobId": i, "employerName": employer, "jobTitle": f"Site Manager {i}", "locationName": "London",
         "date": "01/01/2024", "jobDescription": "Residential scheme."}
        for i in range(n)
    ]


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def ocds_release():
    return {
        "ocid": "ocds-b5fd17-abc123",
        "id": "rel-1",
        "date": "2024-01-05T10:00:00Z",
        "buyer": {"name": "London Borough of Camden"},
        "parties": [
            {"name": "London Borough of Camden", "roles": ["buyer"], "address": {"locality": "London"}},
            {
                "name": "Northfield Construction Ltd",
                "roles": ["supplier"],
                "identifier": {"scheme": "GB-COH", "id": "01234567"},
                "contactPoint": {"url": "https://www.northfield.co.uk/"},
            },
        ],
        "tender": {
            "title": "School refurbishment framework",
            "description": "Refurbishment of three primary schools.",
            "value": {"amount": 1_500_000},
        },
        "awards": [
            {
                "id": "1",
                "status": "active",
                "date": "2024-01-04",
                "value": {"amount": 1_200_000},
                "suppliers": [{"id": "sup-1", "name": "Northfield Construction Ltd"}],
            },
            {"id": "2", "status": "cancelled", "suppliers": [{"name": "Brightwater Building Ltd"}]},
        ],
    }


class TestRecruitmentFilter:
    def test_agency_names(self):
        """Known agency names and recruitment wording in the name are filtered."""
        assert is_recruitment_agency("Hays Construction")
        assert is_recruitment_agency("Acme Recruitment Ltd")
        assert is_recruitment_agency("Spencer Ogden")

    def test_agency_wording_in_description(self):
        """Posting on behalf of a client marks the advert as agency work."""
        assert is_recruitment_agency("Northfield", "We are acting on behalf of our client, a leading contractor.")

    def test_direct_employer(self):
        """A contractor hiring for its own site team is kept."""
        assert not is_recruitment_agency("Northfield Construction Ltd", "Join our site team.")


class TestProviderClient:
    """get_json turns every transient failure into 'no data'."""

    def test_returns_payload(self, http):
        """The decoded JSON is returned and the default timeout is applied."""
        http.get.return_value = json_response({"results": []})
        client = ProviderClient(http=http, max_retries=0)
        assert client.get_json("https://example.test/api") == {"results": []}
        assert http.get.call_args.kwargs["timeout"] == 15.0

    def test_timeout_is_no_data(self, http):
        """Timeouts are retried and then reported as no data."""
        http.get.side_effect = requests.exceptions.Timeout("read timed out")
        client = ProviderClient(http=http, max_retries=1, base_delay=0)
        assert client.get_json("https://example.test/api") is None
        assert http.get.call_count == 2

    def test_http_error_is_no_data(self, http):
        """A 500 is logged as a provider failure and returns nothing."""
        http.get.return_value = http_error(500)
        client = ProviderClient(http=http, max_retries=0)
        assert client.get_json("https://example.test/api") is None
        assert client.logger.get_metrics()["errors_by_type"]["HTTPError_500"] == 1

    def test_server_errors_open_circuit(self, http):
        """Repeated 5xx/429 responses count toward the breaker threshold."""
        http.get.side_effect = [http_error(503), http_error(429), json_response({"results": []})]
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        client = ProviderClient(http=http, max_retries=0, breaker=breaker)

        assert client.get_json("https://example.test/api") is None
        assert client.get_json("https://example.test/api") is None
        assert breaker.state == CircuitBreaker.OPEN
        assert client.get_json("https://example.test/api") is None
        assert http.get.call_count == 2

    def test_client_errors_do_not_trip_circuit(self, http):
        """A 404 is permanent for that request, not a sign the provider is down."""
        http.get.return_value = http_error(404)
        breaker = CircuitBreaker(failure_threshold=1)
        client = ProviderClient(http=http, max_retries=0, breaker=breaker)
        assert client.get_json("https://example.test/api") is None
        assert breaker.state == CircuitBreaker.CLOSED
        assert client.logger.get_metrics()["errors_by_type"]["HTTPError_404"] == 1

    def test_invalid_json_is_no_data(self, http):
        """An unparseable body returns None instead of raising."""
        resp = json_response(None)
        resp.json.side_effect = ValueError("Expecting value")
        http.get.return_value = resp
        assert ProviderClient(http=http, max_retries=0).get_json("https://example.test/api") is None

    def test_open_circuit_skips_call(self, http):
        """Once the breaker opens, later calls never reach the network."""
        http.get.side_effect = requests.exceptions.ConnectionError("refused")
        client = ProviderClient(http=http, max_retries=0, breaker=CircuitBreaker(failure_threshold=1))
        assert client.get_json("https://example.test/api") is None
        assert client.get_json("https://example.test/api") is None
        assert http.get.call_count == 1

    def test_failures_recorded_in_metrics(self, http):
        """Failures are counted by type and attempts by provider."""
        http.get.side_effect = requests.exceptions.Timeout()
        client = ProviderClient(http=http, max_retries=0)
        client.get_json("https://example.test/api")
        metrics = client.logger.get_metrics()
        assert metrics["errors_by_type"]["Timeout"] == 1
        assert metrics["provider_calls"]["provider"]["attempts"] == 1


class TestReedProvider:
    def test_to_raw_posting(self, reed_job):
        """Reed fields map onto the raw posting keys."""
        raw = to_raw_posting(reed_job)
        assert raw["company_name"] == "Northfield Construction Ltd"
        assert raw["posted_date"] == "01/01/2024"
        assert raw["source_id"] == "51234567"
        assert raw["source"] == "reed"

    def test_search_params_and_auth(self, http):
        """Search sends the API key as basic auth and direct-employer filters."""
        http.get.return_value = json_response({"results": reed_results(3)})
        reed = ReedProvider("secret", http=http, max_retries=0)
        postings = reed.search("site manager", "London", posted_within=14)

        assert len(postings) == 3
        kwargs = http.get.call_args.kwargs
        assert kwargs["auth"] == ("secret", "")
        assert kwargs["params"]["keywords"] == "site manager"
        assert kwargs["params"]["postedWithin"] == 14
        assert kwargs["params"]["postedByDirectEmployer"] == "true"
        assert kwargs["params"]["resultsToSkip"] == 0

    def test_pages_until_short_page(self, http):
        """Paging stops on a short page and never asks for more than requested."""
        http.get.side_effect = [
            json_response({"results": reed_results(100)}),
            json_response({"results": reed_results(30)}),
        ]
        reed = ReedProvider("secret", http=http, max_retries=0)
        postings = reed.search("site manager", "London", max_results=150)

        assert len(postings) == 130
        second = http.get.call_args_list[1].kwargs["params"]
        assert second["resultsToSkip"] == 100
        assert second["resultsToTake"] == 50

    def test_agencies_filtered(self, http):
        """Agency adverts are dropped from results and counted."""
        results = reed_results(2) + reed_results(1, employer="Hays Construction")
        http.get.return_value = json_response({"results": results})
        reed = ReedProvider("secret", http=http, max_retries=0)
        assert len(reed.search("site manager", "London")) == 2
        assert reed.agency_filtered == 1

    def test_timeout_returns_empty(self, http):
        """A search that times out yields no postings."""
        http.get.side_effect = requests.exceptions.Timeout()
        assert ReedProvider("secret", http=http, max_retries=0).search("site manager", "London") == []

    def test_budget_exhausted_flagged(self, http):
        """No request is made once the daily budget is spent."""
        budget = MagicMock()
        budget.try_acquire.return_value = False
        reed = ReedProvider("secret", http=http, budget=budget, max_retries=0)

        assert reed.search("site manager", "London") == []
        assert reed.budget_exhausted
        http.get.assert_not_called()

    def test_partial_results_kept_when_budget_runs_out(self, http):
        """Pages fetched before the budget ran out are still returned."""
        budget = MagicMock()
        budget.try_acquire.side_effect = [True, False]
        http.get.return_value = json_response({"results": reed_results(100)})
        reed = ReedProvider("secret", http=http, budget=budget, max_retries=0)

        assert len(reed.search("site manager", "London", max_results=200)) == 100
        assert reed.budget_exhausted

    def test_reed_job_flows_through_pipeline(self, pipeline, reed_job, day):
        """The referral bonus in a Reed description becomes a signal."""
        result = pipeline.ingest_observation(to_raw_posting(reed_job), now=day(1))
        assert result.signals_emitted == ["high_referral_bonus"]
        with session_scope(pipeline.factory) as session:
            assert session.query(PainSignal).one().signal_value == 1000


class TestContractsFinder:
    def test_parse_release(self, ocds_release):
        """Active awards become contract records with supplier identifiers."""
        contracts = parse_release(ocds_release)
        assert len(contracts) == 1

        contract = contracts[0]
        assert contract["supplier_name"] == "Northfield Construction Ltd"
        assert contract["award_date"] == "2024-01-04"
        assert contract["value"] == 1_200_000
        assert contract["buyer_name"] == "London Borough of Camden"
        assert contract["title"] == "School refurbishment framework"
        assert contract["registry_number"] == "01234567"
        assert contract["domain"] == "northfield.co.uk"
        assert contract["region"] == "London"
        assert contract["source_ref"] == "ocds-b5fd17-abc123:1:sup-1"

    def test_tender_value_fallback(self, ocds_release):
        """An award without a value takes the tender value."""
        del ocds_release["awards"][0]["value"]
        assert parse_release(ocds_release)[0]["value"] == 1_500_000

    def test_release_without_awards(self):
        """A release still at tender stage yields no contracts."""
        assert parse_release({"ocid": "ocds-x", "tender": {"title": "Open tender"}}) == []

    def test_fetch_awards(self, http, ocds_release):
        """Award notices are requested from the start of the window."""
        http.get.return_value = json_response({"releases": [ocds_release]})
        provider = ContractsFinderProvider(http=http, max_retries=0)
        awards = provider.fetch_awards(days_back=3, today=date(2024, 1, 10))

        assert len(awards) == 1
        params = http.get.call_args.kwargs["params"]
        assert params["publishedFrom"] == "2024-01-07"
        assert params["stages"] == "award"

    def test_fetch_awards_budget_spent(self, http):
        """A spent budget returns no awards."""
        budget = MagicMock()
        budget.try_acquire.return_value = False
        provider = ContractsFinderProvider(http=http, budget=budget, max_retries=0)
        assert provider.fetch_awards(today=date(2024, 1, 10)) == []

    def test_parsed_award_ingests(self, pipeline, ocds_release, day):
        """A parsed release can be ingested as a contract award."""
        from painsignal.contracts import ContractService

        result = ContractService(pipeline).ingest_contract(parse_release(ocds_release)[0], now=day(4))
        assert result.created
        assert result.match_type == "new"
