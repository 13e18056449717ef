"""
Structured logging for the pain signal engine.

Provides centralized logging with console and file outputs, plus
counters for provider health and pipeline throughput. Counters are
updated from worker threads, so every mutation goes through a lock.
"""

import json
import logging
import sys
import threading
from copy import deepcopy
from datetime import datetime
from pathlib import Path
from typing import Optional


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks provider and pipeline metrics for each run.
    """

    def __init__(
        self,
        name: str = "painsignal",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()
        self.logger.propagate = False

        self._lock = threading.Lock()
        self.metrics = self._empty_metrics()

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_handler.setFormatter(logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(threadName)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"painsignal_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_handler.setFormatter(logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(threadName)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            self.logger.addHandler(file_handler)

    @staticmethod
    def _empty_metrics() -> dict:
        return {
            "api_calls": 0,
            "provider_calls": {},
            "errors_by_type": {},
            "observations_processed": 0,
            "skipped_by_reason": {},
            "companies_created": 0,
            "postings_created": 0,
            "postings_refreshed": 0,
            "postings_reposted": 0,
            "signals_emitted": 0,
            "signals_resolved": 0,
        }

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Provider metrics

    def record_api_call(self):
        """Increment API call counter."""
        with self._lock:
            self.metrics["api_calls"] += 1

    def record_provider_attempt(self, provider: str):
        """Record a call attempt against an external provider."""
        with self._lock:
            stats = self.metrics["provider_calls"].setdefault(
                provider, {"attempts": 0, "successes": 0}
            )
            stats["attempts"] += 1

    def record_provider_success(self, provider: str):
        """Record a successful provider call."""
        with self._lock:
            if provider in self.metrics["provider_calls"]:
                self.metrics["provider_calls"][provider]["successes"] += 1

    def record_provider_failure(self, provider: str, error_type: str):
        """Record a failed provider call."""
        self.record_error(error_type)

    def record_error(self, error_type: str):
        with self._lock:
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    # Pipeline metrics

    def record_observation(self, transition: Optional[str] = None, company_created: bool = False):
        """Record one processed observation and its posting transition."""
        with self._lock:
            self.metrics["observations_processed"] += 1
            if company_created:
                self.metrics["companies_created"] += 1
            if transition == "new":
                self.metrics["postings_created"] += 1
            elif transition == "refreshed":
                self.metrics["postings_refreshed"] += 1
            elif transition == "reposted":
                self.metrics["postings_reposted"] += 1

    def record_skip(self, reason: str):
        """Record an observation dropped before processing."""
        with self._lock:
            skipped = self.metrics["skipped_by_reason"]
            skipped[reason] = skipped.get(reason, 0) + 1

    def record_signals(self, emitted: int = 0, resolved: int = 0):
        with self._lock:
            self.metrics["signals_emitted"] += emitted
            self.metrics["signals_resolved"] += resolved

    def get_metrics(self) -> dict:
        """Return a snapshot of current metrics."""
        with self._lock:
            metrics_copy = deepcopy(self.metrics)
        for stats in metrics_copy["provider_calls"].values():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(stats["successes"] / stats["attempts"], 3)
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Pipeline Session Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(
            f"Observations: {metrics['observations_processed']} "
            f"(new={metrics['postings_created']} refreshed={metrics['postings_refreshed']} "
            f"reposted={metrics['postings_reposted']})"
        )
        self.info(f"Companies created: {metrics['companies_created']}")
        self.info(f"Signals: emitted={metrics['signals_emitted']} resolved={metrics['signals_resolved']}")

        if metrics["provider_calls"]:
            self.info("Provider Success Rates:")
            for provider, stats in metrics["provider_calls"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {provider}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["skipped_by_reason"]:
            self.info("Skipped:")
            for reason, count in metrics["skipped_by_reason"].items():
                self.info(f"  {reason}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None
_global_lock = threading.Lock()


def get_logger(
    name: str = "painsignal",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    with _global_lock:
        if _global_logger is None:
            _global_logger = StructuredLogger(name=name, level=level, **kwargs)
        return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    with _global_lock:
        _global_logger = None
