"""
Test suite for provider chain fallback, caching and enrichment.
"""
import json
import logging

import httpx
import pytest

from lookup_rotator.adapters import build_adapter
from lookup_rotator.credential_store import CredentialStore
from lookup_rotator.error_handler import (
    AllProvidersFailedError,
    FailureReason,
    InvalidInputError,
)
from lookup_rotator.provider_chain import ProviderChain
from lookup_rotator.rate_limiter import RateBudget, RateLimiter
from lookup_rotator.response_cache import ResponseCache
from lookup_rotator.utils.resilient_io import ResilientStateWriter

from tests.fixtures.vendor_payloads import (
    ABUSEIPDB_PAYLOAD,
    IPAPI_PAYLOAD,
    IPGEOLOCATION_PAYLOAD,
    IPINFO_PAYLOAD,
    RDAP_PAYLOAD,
)


@pytest.fixture
def limiter(fake_clock):
    return RateLimiter({}, clock=fake_clock)


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "cache" / "ip_lookup_cache.json"


@pytest.fixture
def cache(cache_path, fake_clock):
    return ResponseCache(cache_path, clock=fake_clock)


@pytest.fixture
def make_chain(store, limiter, cache, http_client):
    def factory(
        adapters,
        enrichment=None,
        capability="ip-lookup",
        subject_kind="ip",
        **overrides,
    ):
        return ProviderChain(
            capability=capability,
            subject_kind=subject_kind,
            adapters=[build_adapter(name) for name in adapters],
            store=overrides.get("store", store),
            limiter=overrides.get("limiter", limiter),
            cache=overrides.get("cache", cache),
            http_client=http_client,
            enrichment=build_adapter(enrichment) if enrichment else None,
        )

    return factory


class TestFallback:
    """Test priority-order fallback across adapters."""

    @pytest.mark.asyncio
    async def test_first_success_wins(self, make_chain, vendor_router):
        vendor_router.respond_json("ipinfo.io", IPINFO_PAYLOAD)
        vendor_router.respond_json("ipapi.co", IPAPI_PAYLOAD)
        chain = make_chain(["ipinfo", "ipapi"])

        outcome = await chain.resolve("8.8.8.8")

        assert outcome.provider == "ipinfo"
        assert outcome.from_cache is False
        assert vendor_router.hosts_called() == ["ipinfo.io"]

    @pytest.mark.asyncio
    async def test_network_error_then_not_configured_then_success(
        self, make_chain, vendor_router, lookup_config, env_vars, settings_path, caplog
    ):
        del env_vars["IP_GEOLOCATION_API_KEY"]
        store = CredentialStore(lookup_config.providers, env_vars, settings_path)
        vendor_router.respond_json("ipapi.co", IPAPI_PAYLOAD)
        chain = make_chain(["ipinfo", "ipgeolocation", "ipapi"], store=store)

        with caplog.at_level(logging.WARNING, logger="lookup_rotator"):
            outcome = await chain.resolve("8.8.8.8")

        assert outcome.provider == "ipapi"
        assert outcome.result.country == "United States"
        # ipgeolocation was skipped without a network call
        assert vendor_router.hosts_called() == ["ipinfo.io", "ipapi.co"]
        assert any("ipinfo" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_all_failed_preserves_reasons_in_order(
        self, make_chain, vendor_router, lookup_config, env_vars, settings_path, fake_clock
    ):
        del env_vars["IP_GEOLOCATION_API_KEY"]
        store = CredentialStore(lookup_config.providers, env_vars, settings_path)
        limiter = RateLimiter({"ipapi": RateBudget(1, 3600)}, clock=fake_clock)
        limiter.try_consume("ipapi")
        vendor_router.respond("ipinfo.io", httpx.ReadTimeout("timed out"))
        chain = make_chain(["ipinfo", "ipapi", "ipgeolocation"], store=store, limiter=limiter)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await chain.resolve("8.8.8.8")

        error = exc_info.value
        assert error.reasons == [
            FailureReason.ADAPTER_FAILURE,
            FailureReason.RATE_LIMITED,
            FailureReason.NOT_CONFIGURED,
        ]
        assert [a.adapter for a in error.attempts] == ["ipinfo", "ipapi", "ipgeolocation"]
        assert error.attempts[0].detail == "timeout"

    @pytest.mark.asyncio
    async def test_http_status_detail_recorded(self, make_chain, vendor_router):
        vendor_router.respond_json("ipinfo.io", {"error": "slow down"}, status_code=429)
        chain = make_chain(["ipinfo"])

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await chain.resolve("8.8.8.8")

        assert exc_info.value.attempts[0].detail == "http_429"

    @pytest.mark.asyncio
    async def test_failures_written_to_failure_log(self, make_chain, failure_logs):
        chain = make_chain(["ipinfo"])

        with pytest.raises(AllProvidersFailedError):
            await chain.resolve("8.8.8.8")

        record = json.loads((failure_logs / "failures.log").read_text().splitlines()[0])
        assert record["adapter"] == "ipinfo"
        assert record["error_type"] == "connection"
        assert record["subject"] == "8.8.8.8"

    @pytest.mark.asyncio
    async def test_invalid_subject_runs_no_adapter(self, make_chain, vendor_router):
        chain = make_chain(["ipinfo"])

        with pytest.raises(InvalidInputError):
            await chain.resolve("not-an-ip")

        assert vendor_router.calls == []

    @pytest.mark.asyncio
    async def test_keyless_adapter_needs_no_credential(
        self, make_chain, vendor_router, tmp_path, fake_clock
    ):
        vendor_router.respond_json("rdap.org", RDAP_PAYLOAD)
        cache = ResponseCache(tmp_path / "domain.json", clock=fake_clock)
        chain = make_chain(
            ["rdap"], capability="domain-lookup", subject_kind="domain", cache=cache
        )

        outcome = await chain.resolve("https://Google.com/about")

        assert outcome.subject == "google.com"
        assert outcome.result.registrar == "MarkMonitor Inc."


class TestCaching:
    """Test cache reuse around the chain."""

    @pytest.mark.asyncio
    async def test_second_resolve_served_from_cache(self, make_chain, vendor_router, fake_clock):
        limiter = RateLimiter({"ipinfo": RateBudget(10, 3600)}, clock=fake_clock)
        vendor_router.respond_json("ipinfo.io", IPINFO_PAYLOAD)
        chain = make_chain(["ipinfo"], limiter=limiter)

        first = await chain.resolve("8.8.8.8")
        remaining = limiter.remaining("ipinfo")
        second = await chain.resolve("8.8.8.8")

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.result == first.result
        assert len(vendor_router.calls) == 1
        assert limiter.remaining("ipinfo") == remaining

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, make_chain, vendor_router, fake_clock):
        vendor_router.respond_json("ipinfo.io", IPINFO_PAYLOAD)
        chain = make_chain(["ipinfo"])

        await chain.resolve("8.8.8.8")
        fake_clock.advance(24 * 60 * 60)
        outcome = await chain.resolve("8.8.8.8")

        assert outcome.from_cache is False
        assert len(vendor_router.calls) == 2

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_fail_lookup(
        self, make_chain, vendor_router, cache_path, fake_clock
    ):
        def failing_writer(path, data):
            raise OSError("disk full")

        writer = ResilientStateWriter(cache_path, logging.getLogger("test"), writer=failing_writer)
        cache = ResponseCache(cache_path, clock=fake_clock, writer=writer)
        vendor_router.respond_json("ipinfo.io", IPINFO_PAYLOAD)
        chain = make_chain(["ipinfo"], cache=cache)

        outcome = await chain.resolve("8.8.8.8")

        assert outcome.provider == "ipinfo"
        assert not cache_path.exists()


class TestEnrichment:
    """Test the reputation enrichment step."""

    @pytest.mark.asyncio
    async def test_enrichment_is_attached_and_cached(self, make_chain, vendor_router):
        vendor_router.respond_json("ipinfo.io", IPINFO_PAYLOAD)
        vendor_router.respond_json("api.abuseipdb.com", ABUSEIPDB_PAYLOAD)
        chain = make_chain(["ipinfo"], enrichment="abuseipdb")

        outcome = await chain.resolve("8.8.8.8")
        cached = await chain.resolve("8.8.8.8")

        assert outcome.result.security.abuse_confidence == 80
        assert cached.from_cache is True
        assert cached.result.security.risk_level == "high"

    @pytest.mark.asyncio
    async def test_enrichment_failure_is_swallowed(self, make_chain, vendor_router):
        vendor_router.respond_json("api.ipgeolocation.io", IPGEOLOCATION_PAYLOAD)
        vendor_router.respond_json("api.abuseipdb.com", {"errors": []}, status_code=500)
        chain = make_chain(["ipgeolocation"], enrichment="abuseipdb")

        outcome = await chain.resolve("8.8.8.8")

        assert outcome.provider == "ipgeolocation"
        assert outcome.result.security is None

    @pytest.mark.asyncio
    async def test_enrichment_skipped_without_credential(
        self, make_chain, vendor_router, lookup_config, env_vars, settings_path
    ):
        del env_vars["ABUSEIPDB_API_KEY"]
        store = CredentialStore(lookup_config.providers, env_vars, settings_path)
        vendor_router.respond_json("ipinfo.io", IPINFO_PAYLOAD)
        chain = make_chain(["ipinfo"], enrichment="abuseipdb", store=store)

        outcome = await chain.resolve("8.8.8.8")

        assert outcome.result.security is None
        assert vendor_router.hosts_called() == ["ipinfo.io"]
