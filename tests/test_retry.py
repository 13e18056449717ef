"""
Tests for retry logic and circuit breaker.
"""

import threading
import time

import pytest
import requests

from painsignal.retry import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    exponential_backoff,
    is_transient_error,
    should_retry_http_status,
)


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_page_fetched_after_timeouts(self):
        """A provider page that times out twice is fetched on the third attempt."""
        attempts = []

        @exponential_backoff(max_retries=2, base_delay=0.01,
                             exceptions=(requests.exceptions.Timeout,))
        def fetch_page(skip):
            attempts.append(skip)
            if len(attempts) < 3:
                raise requests.exceptions.Timeout("read timed out")
            return {"results": [], "resultsToSkip": skip}

        assert fetch_page(100) == {"results": [], "resultsToSkip": 100}
        assert attempts == [100, 100, 100]

    def test_exhausted_retries_chain_cause(self):
        """RetryError keeps the last failure as its cause."""
        @exponential_backoff(max_retries=1, base_delay=0.01)
        def always_refused():
            raise requests.exceptions.ConnectionError("connection refused")

        with pytest.raises(RetryError) as exc:
            always_refused()
        assert "2 attempts" in str(exc.value)
        assert isinstance(exc.value.__cause__, requests.exceptions.ConnectionError)

    def test_zero_retries_is_single_attempt(self):
        """With no retries the function runs exactly once."""
        calls = [0]

        @exponential_backoff(max_retries=0, base_delay=0.01)
        def once():
            calls[0] += 1
            raise TimeoutError("slow")

        with pytest.raises(RetryError):
            once()
        assert calls[0] == 1

    def test_unlisted_errors_propagate_unchanged(self):
        """Only listed exception types are retried."""
        calls = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01,
                             exceptions=(requests.exceptions.Timeout,))
        def bad_payload():
            calls[0] += 1
            raise KeyError("results")

        with pytest.raises(KeyError):
            bad_payload()
        assert calls[0] == 1

    def test_delays_double_and_cap(self):
        """Each delay doubles until it reaches the cap."""
        delays = []

        @exponential_backoff(max_retries=4, base_delay=0.01, max_delay=0.03,
                             on_retry=lambda attempt, e, delay: delays.append((attempt, delay)))
        def always_fails():
            raise ConnectionError("reset")

        with pytest.raises(RetryError):
            always_fails()
        assert delays == [(1, 0.01), (2, 0.02), (3, 0.03), (4, 0.03)]


class TestCircuitBreaker:
    """Test circuit breaker pattern."""

    @staticmethod
    def fail():
        raise requests.exceptions.ConnectionError("provider down")

    def test_opens_after_threshold_and_blocks(self):
        """The breaker opens at the threshold and rejects further calls."""
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        for _ in range(2):
            with pytest.raises(requests.exceptions.ConnectionError):
                breaker.call(self.fail)

        assert breaker.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitOpenError, match="Circuit breaker is OPEN"):
            breaker.call(lambda: "never called")

    def test_success_resets_failure_count(self):
        """A success clears earlier failures."""
        breaker = CircuitBreaker(failure_threshold=2)
        with pytest.raises(requests.exceptions.ConnectionError):
            breaker.call(self.fail)
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.failure_count == 0
        assert breaker.state == CircuitBreaker.CLOSED

    def test_half_open_failure_reopens(self):
        """A failed trial call after the timeout reopens the breaker."""
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0.05)
        with pytest.raises(requests.exceptions.ConnectionError):
            breaker.call(self.fail)

        time.sleep(0.08)
        with pytest.raises(requests.exceptions.ConnectionError):
            breaker.call(self.fail)
        assert breaker.state == CircuitBreaker.OPEN

    def test_half_open_success_closes(self):
        """A successful trial call after the timeout closes the breaker."""
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0.05)
        with pytest.raises(requests.exceptions.ConnectionError):
            breaker.call(self.fail)

        time.sleep(0.08)
        assert breaker.call(lambda: {"releases": []}) == {"releases": []}
        assert breaker.state == CircuitBreaker.CLOSED

    def test_shared_between_workers(self):
        """Failures from several threads accumulate on one breaker."""
        breaker = CircuitBreaker(failure_threshold=4, recovery_timeout=60)

        def worker():
            try:
                breaker.call(self.fail)
            except requests.exceptions.ConnectionError:
                pass

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert breaker.failure_count == 4
        assert breaker.state == CircuitBreaker.OPEN

    def test_manual_reset(self):
        """reset() closes the breaker and forgets the last failure."""
        breaker = CircuitBreaker(failure_threshold=1)
        with pytest.raises(requests.exceptions.ConnectionError):
            breaker.call(self.fail)
        breaker.reset()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.last_failure_time is None


class TestTransientErrorDetection:
    """Test transient error detection utilities."""

    @pytest.mark.parametrize("error", [
        TimeoutError("read timed out"),
        CircuitOpenError("Circuit breaker is OPEN"),
        Exception("(sqlite3.OperationalError) database is locked"),
        Exception("503 Service Unavailable"),
        Exception("429 Too Many Requests"),
    ])
    def test_transient(self, error):
        """Timeouts, an open circuit, a locked database and 5xx/429 errors are transient."""
        assert is_transient_error(error)

    @pytest.mark.parametrize("error", [
        Exception("401 Unauthorized"),
        ValueError("Invalid award date"),
        KeyError("results"),
    ])
    def test_permanent(self, error):
        """Auth failures and bad data are permanent."""
        assert not is_transient_error(error)

    def test_http_status_retry_logic(self):
        """Only timeouts, rate limits and 5xx statuses are retried."""
        for status in (408, 429, 500, 502, 503, 504):
            assert should_retry_http_status(status)
        for status in (200, 400, 401, 403, 404):
            assert not should_retry_http_status(status)
