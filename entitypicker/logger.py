"""
Structured logging for entitypicker.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for catalog fetches and reference decoding.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for catalog fetch health and decode outcomes.
    """

    def __init__(
        self,
        name: str = "entitypicker",
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
            enable_console: Output logs to console (stderr)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()
        self.logger.propagate = False

        self.metrics = {
            "fetches_attempted": 0,
            "fetches_successful": 0,
            "fetches_failed": 0,
            "stale_fetches_discarded": 0,
            "decodes": {"exact": 0, "ambiguous": 0, "failed": 0},
            "errors_by_type": {},
            "catalog_success_rate": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"entitypicker_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

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
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_fetch_attempt(self, source: str):
        """Record a catalog fetch for a source (catalog implementation name)."""
        self.metrics["fetches_attempted"] += 1
        if source not in self.metrics["catalog_success_rate"]:
            self.metrics["catalog_success_rate"][source] = {
                "attempts": 0,
                "successes": 0
            }
        self.metrics["catalog_success_rate"][source]["attempts"] += 1

    def record_fetch_success(self, source: str):
        self.metrics["fetches_successful"] += 1
        if source in self.metrics["catalog_success_rate"]:
            self.metrics["catalog_success_rate"][source]["successes"] += 1

    def record_fetch_failure(self, source: str, error_type: str):
        self.metrics["fetches_failed"] += 1

        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def record_stale_fetch(self):
        """Record a fetch result dropped because a newer fetch had started."""
        self.metrics["stale_fetches_discarded"] += 1

    def record_decode(self, resolution: str):
        """Record a decode outcome: exact, ambiguous or failed."""
        self.metrics["decodes"][resolution] = self.metrics["decodes"].get(resolution, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = self.metrics.copy()
        for source, stats in metrics_copy["catalog_success_rate"].items():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(
                    stats["successes"] / stats["attempts"], 3
                )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_attempts = metrics["fetches_attempted"]
        total_successes = metrics["fetches_successful"]
        overall_rate = 0
        if total_attempts > 0:
            overall_rate = round(total_successes / total_attempts * 100, 1)

        self.info("=== Entity Picker Metrics ===")
        self.info(f"Fetches: {total_successes}/{total_attempts} ({overall_rate}% success)")
        self.info(f"Stale fetches discarded: {metrics['stale_fetches_discarded']}")
        decodes = metrics["decodes"]
        self.info(
            f"Decodes: exact={decodes['exact']} ambiguous={decodes['ambiguous']} failed={decodes['failed']}"
        )

        if metrics["catalog_success_rate"]:
            self.info("Catalog Success Rates:")
            for source, stats in metrics["catalog_success_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {source}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "entitypicker",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Level defaults to ENTITYPICKER_LOG_LEVEL (else INFO). File logging is
    on only when ENTITYPICKER_LOG_DIR is set or log_dir is passed.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        if level is None:
            level = os.getenv("ENTITYPICKER_LOG_LEVEL", "INFO")
        if "log_dir" not in kwargs and os.getenv("ENTITYPICKER_LOG_DIR"):
            kwargs["log_dir"] = Path(os.environ["ENTITYPICKER_LOG_DIR"])
        kwargs.setdefault("enable_file", kwargs.get("log_dir") is not None)
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
