"""Structured logging configuration for reclink.

Provides JSON-formatted logs for production and human-readable
logs for development.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import get_settings

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.funcName:
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> None:
    """Configure logging based on settings."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)

    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    logger = get_logger(__name__)
    logger.info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": settings.log_level,
            "log_format": settings.log_format,
        },
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds context to all log messages."""

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        """Process the logging message and add extra context."""
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> LoggerAdapter:
    """Get a logger with additional context.

    Args:
        name: Logger name
        **context: Context fields to add to all log messages

    Returns:
        Logger adapter with context

    Usage:
        logger = get_context_logger(__name__, run_id="abc123")
        logger.info("Resolving shard")  # Includes run_id
    """
    return LoggerAdapter(get_logger(name), context)


# =========================
# Convenience functions
# =========================


def log_resolution_event(
    source_record_id: str,
    reference_source_id: str | None,
    target_record_id: str | None,
    confidence: float,
    tier: str,
) -> None:
    """Log the selected match (or lack of one) for a source record.

    Args:
        source_record_id: Source record being resolved
        reference_source_id: Reference source of the selected match
        target_record_id: Matched target record id (if found)
        confidence: Composite confidence of the selected match
        tier: Confidence tier of the selected match
    """
    logger = get_logger("reclink.resolution")
    logger.debug(
        f"Resolved {source_record_id} -> {target_record_id or 'no match'}",
        extra={
            "source_record_id": source_record_id,
            "reference_source_id": reference_source_id,
            "target_record_id": target_record_id,
            "confidence": confidence,
            "tier": tier,
            "event": "record_resolved",
        },
    )


def log_source_skipped(source_id: str, reason: str, phase: str = "primary") -> None:
    """Log a reference source that was skipped because it failed to load."""
    logger = get_logger("reclink.resolution")
    logger.warning(
        f"Skipping reference source {source_id}: {reason}",
        extra={
            "source_id": source_id,
            "reason": reason,
            "phase": phase,
            "event": "source_skipped",
        },
    )


def log_pair_dropped(
    source_record_id: str,
    target_record_id: str,
    reference_source_id: str,
    reason: str,
) -> None:
    """Log a candidate pair dropped because of unusable data."""
    logger = get_logger("reclink.resolution")
    logger.debug(
        f"Dropped pair {source_record_id}/{target_record_id}: {reason}",
        extra={
            "source_record_id": source_record_id,
            "target_record_id": target_record_id,
            "reference_source_id": reference_source_id,
            "reason": reason,
            "event": "pair_dropped",
        },
    )


def log_kpi_decision(
    decision: str,
    current_match_rate: float,
    threshold: float,
    source_id: str | None = None,
) -> None:
    """Log a historical-matching checkpoint or early-termination decision.

    Args:
        decision: Decision taken (skip_all, consult, terminate)
        current_match_rate: Running match rate at decision time
        threshold: Threshold the rate was compared against
        source_id: Historical source the decision applies to
    """
    logger = get_logger("reclink.historical")
    logger.info(
        f"KPI decision {decision} at match rate {current_match_rate:.2%}",
        extra={
            "decision": decision,
            "current_match_rate": current_match_rate,
            "threshold": threshold,
            "source_id": source_id,
            "event": "kpi_decision",
        },
    )


def log_run_complete(
    run_id: str,
    total_source_records: int,
    matched_records: int,
    cluster_count: int,
    duration_seconds: float,
) -> None:
    """Log the completion of a pipeline run."""
    logger = get_logger("reclink.pipeline")
    logger.info(
        f"Completed match run {run_id}",
        extra={
            "run_id": run_id,
            "total_source_records": total_source_records,
            "matched_records": matched_records,
            "cluster_count": cluster_count,
            "duration_seconds": duration_seconds,
            "event": "run_complete",
        },
    )


def log_data_quality(
    run_id: str,
    dimension: str,
    score: float,
    passed: bool,
    details: dict[str, Any] | None = None,
) -> None:
    """Log a match quality measurement.

    Args:
        run_id: Pipeline run identifier
        dimension: Quality dimension measured
        score: Quality score (0-1)
        passed: Whether threshold was met
        details: Additional measurement details
    """
    logger = get_logger("reclink.quality")
    level = logging.INFO if passed else logging.WARNING
    logger.log(
        level,
        f"Quality {dimension} for run {run_id}: {score:.2%}",
        extra={
            "run_id": run_id,
            "dimension": dimension,
            "score": score,
            "passed": passed,
            "details": details,
            "event": "quality_measurement",
        },
    )
