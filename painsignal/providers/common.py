"""Shared HTTP handling for all data providers."""

import re
from typing import Any, Dict, Optional

import requests

from ..budget import ProviderBudget
from ..errors import BudgetExhaustedError, TransientProviderError
from ..logger import get_logger
from ..retry import CircuitBreaker, CircuitOpenError, RetryError, exponential_backoff, should_retry_http_status

DEFAULT_TIMEOUT = 15.0

RECRUITMENT_PATTERNS = [
    re.compile(p, re.I) for p in (
        r"recruit",
        r"staffing",
        r"talent\s*(acquisition|partner|solution)",
        r"personnel",
        r"resourcing",
        r"employment\s*(agency|service)",
        r"\bhays\b",
        r"reed\s*employment",
        r"michael\s*page",
        r"robert\s*half",
        r"randstad",
        r"adecco",
        r"manpower",
        r"kelly\s*services",
        r"page\s*group",
        r"spencer\s*ogden",
        r"la\s*fosse",
        r"goodman\s*masson",
        r"harvey\s*nash",
        r"amber\s*employment",
        r"blue\s*arrow",
        r"pertemps",
        r"search\s*consultancy",
    )
]

RECRUITER_DESCRIPTION_PATTERNS = [
    re.compile(p, re.I) for p in (
        r"on\s*behalf\s*of",
        r"our\s*client",
        r"confidential\s*client",
        r"client\s*of\s*ours",
        r"we\s*are\s*recruiting",
        r"acting\s*on\s*behalf",
    )
]


def is_recruitment_agency(company_name: str, description: Optional[str] = None) -> bool:
    """True when the advertiser looks like an agency rather than the employer."""
    if any(p.search(company_name or "") for p in RECRUITMENT_PATTERNS):
        return True
    if description and any(p.search(description) for p in RECRUITER_DESCRIPTION_PATTERNS):
        return True
    return False


class ProviderClient:
    """
    JSON-over-HTTP client with a hard timeout, retries on timeouts and
    connection errors, a circuit breaker and an optional daily budget.

    get_json returns None for "no data" (timeouts, transient or HTTP
    failures) so one bad call never stops the caller's batch.
    """

    name = "provider"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        budget: Optional[ProviderBudget] = None,
        http: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        max_retries: int = 2,
        base_delay: float = 1.0,
    ):
        self.logger = get_logger()
        self.timeout = timeout
        self.budget = budget
        self.http = http or requests.Session()
        self.breaker = breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._fetch = exponential_backoff(
            max_retries=max_retries,
            base_delay=base_delay,
            exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError),
        )(self._request)

    def _request(self, url: str, params: Optional[Dict[str, Any]], auth) -> requests.Response:
        return self.http.get(
            url, params=params, auth=auth, timeout=self.timeout,
            headers={"Accept": "application/json"},
        )

    def _checked_request(self, url: str, params: Optional[Dict[str, Any]], auth) -> requests.Response:
        resp = self._fetch(url, params, auth)
        if should_retry_http_status(resp.status_code):
            raise TransientProviderError(self.name, f"HTTP {resp.status_code}", status=resp.status_code)
        return resp

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None, auth=None) -> Optional[Any]:
        """
        Raises:
            BudgetExhaustedError: today's budget for this provider is spent
        """
        if self.budget is not None and not self.budget.try_acquire():
            raise BudgetExhaustedError(self.name)

        self.logger.record_api_call()
        self.logger.record_provider_attempt(self.name)
        try:
            resp = self.breaker.call(self._checked_request, url, params, auth)
            resp.raise_for_status()
            data = resp.json()
        except RetryError as e:
            self.logger.record_provider_failure(self.name, "Timeout")
            self.logger.warning(f"{self.name} request timed out", url=url, error=str(e))
            return None
        except CircuitOpenError as e:
            self.logger.record_provider_failure(self.name, "CircuitOpen")
            self.logger.warning(f"{self.name} circuit open, skipping call", url=url, error=str(e))
            return None
        except TransientProviderError as e:
            self.logger.record_provider_failure(self.name, f"HTTPError_{e.status}")
            self.logger.warning(f"{self.name} temporarily unavailable", url=url, status=e.status)
            return None
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            self.logger.record_provider_failure(self.name, f"HTTPError_{status}")
            self.logger.error(f"{self.name} request failed", url=url, status=status)
            return None
        except requests.exceptions.RequestException as e:
            self.logger.record_provider_failure(self.name, "RequestException")
            self.logger.error(f"{self.name} request error", url=url, error=str(e))
            return None
        except ValueError as e:
            self.logger.record_provider_failure(self.name, "InvalidJSON")
            self.logger.error(f"{self.name} returned invalid JSON", url=url, error=str(e))
            return None

        self.logger.record_provider_success(self.name)
        return data
