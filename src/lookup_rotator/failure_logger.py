"""
Structured record of every adapter failure.

Each failure produces two entries: a JSON line in logs/failures.log carrying
the status, exception and a slice of the vendor's response body, and a short
warning on the "lookup_rotator" logger. Secrets only ever appear masked.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .error_handler import ClassifiedError, mask_credential
from .utils.paths import get_logs_dir

lib_logger = logging.getLogger("lookup_rotator")

FAILURE_LOG_NAME = "failures.log"
FAILURE_LOG_MAX_BYTES = 5 * 1024 * 1024
FAILURE_LOG_BACKUPS = 2


class JsonFormatter(logging.Formatter):
    """Emit the record's dict payload as one JSON line."""

    def format(self, record):
        return json.dumps(record.msg, default=str)


_logs_dir_override: Optional[Path] = None
_failure_logger: Optional[logging.Logger] = None


def configure_failure_logger(logs_dir: Optional[Union[Path, str]] = None) -> None:
    """
    Point failures.log at `logs_dir`, or back at the default logs folder.

    Takes effect on the next failure; open handlers are closed right away.
    """
    global _logs_dir_override, _failure_logger
    _logs_dir_override = Path(logs_dir) if logs_dir else None
    if _failure_logger is not None:
        _detach_handlers(_failure_logger)
    _failure_logger = None


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _build_failure_logger(logs_dir: Path) -> logging.Logger:
    logger = logging.getLogger("lookup_failures")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    _detach_handlers(logger)

    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            logs_dir / FAILURE_LOG_NAME,
            maxBytes=FAILURE_LOG_MAX_BYTES,
            backupCount=FAILURE_LOG_BACKUPS,
            encoding="utf-8",
        )
        handler.setFormatter(JsonFormatter())
    except OSError as e:
        lib_logger.warning(f"failures.log unavailable in {logs_dir}: {e}")
        handler = logging.NullHandler()

    logger.addHandler(handler)
    return logger


def get_failure_logger() -> logging.Logger:
    """The JSON failure logger, built on first use."""
    global _failure_logger
    if _failure_logger is None:
        _failure_logger = _build_failure_logger(_logs_dir_override or get_logs_dir())
    return _failure_logger


def _response_text(error: BaseException) -> Optional[str]:
    response = getattr(error, "response", None)
    if response is None:
        return None
    try:
        return response.text
    except Exception:
        # streamed or undecodable bodies have no text to show
        return None


def log_failure(
    adapter: str,
    subject: str,
    attempt: int,
    classified: ClassifiedError,
    credential: Optional[str] = None,
) -> None:
    """
    Record one failed adapter call.

    Args:
        adapter: Name of the adapter that failed
        subject: Normalized subject being looked up
        attempt: 1-based position of the adapter in its chain
        classified: Result of classify_adapter_error()
        credential: Secret used for the call, if any
    """
    error = classified.original_exception
    body = _response_text(error)
    masked = mask_credential(credential)

    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "adapter": adapter,
        "subject": subject,
        "attempt_number": attempt,
        "credential_ending": masked,
        "error_type": classified.error_type,
        "status_code": classified.status_code,
        "exception": type(error).__name__,
        "error_message": str(error)[:2000],
        "raw_response": body[:5000] if body else None,
    }
    try:
        get_failure_logger().error(record)
    except OSError as e:
        lib_logger.warning(f"Could not append to failures.log: {e}")

    lib_logger.warning(
        f"{adapter} failed for '{subject}' ({classified.detail}, key {masked}); "
        "details in failures.log"
    )
