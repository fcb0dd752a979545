# src/lookup_rotator/timeout_config.py
"""
httpx timeouts for vendor calls.

An adapter's configured budget (10s for IP vendors, 15s for whois, see
config.DEFAULT_CONFIG["timeouts"]) bounds reads and writes. Connecting and
waiting for a pooled connection get their own shorter limits, read from
TIMEOUT_CONNECT and TIMEOUT_POOL, and never exceed the budget.
"""

import logging
import os

import httpx

lib_logger = logging.getLogger("lookup_rotator")

MAX_ADAPTER_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_POOL_TIMEOUT = 5.0


def _seconds_from_env(name: str, fallback: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return fallback
    try:
        return float(raw)
    except ValueError:
        lib_logger.warning(f"Ignoring {name}={raw!r}, not a number; using {fallback}s")
        return fallback


class TimeoutConfig:
    @staticmethod
    def connect() -> float:
        return _seconds_from_env("TIMEOUT_CONNECT", DEFAULT_CONNECT_TIMEOUT)

    @staticmethod
    def pool() -> float:
        return _seconds_from_env("TIMEOUT_POOL", DEFAULT_POOL_TIMEOUT)

    @classmethod
    def for_adapter(cls, seconds: float) -> httpx.Timeout:
        """Timeout for a single adapter call, capped at MAX_ADAPTER_TIMEOUT."""
        budget = min(float(seconds), MAX_ADAPTER_TIMEOUT)
        return httpx.Timeout(
            budget,
            connect=min(cls.connect(), budget),
            pool=min(cls.pool(), budget),
        )
