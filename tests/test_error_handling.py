"""
Test suite for error classification, masking and resilient file writes.
"""
import json
import logging

import httpx
import pytest

from lookup_rotator.error_handler import (
    AdapterAttempt,
    AdapterFailure,
    AllProvidersFailedError,
    FailureReason,
    InvalidInputError,
    UnknownCapabilityError,
    classify_adapter_error,
    mask_credential,
)
from lookup_rotator.models import (
    DomainContact,
    DomainLookupResult,
    GeoLookupResult,
    SecurityReport,
)
from lookup_rotator.utils.resilient_io import (
    ResilientStateWriter,
    atomic_write_json,
    load_json_document,
)


def _status_error(code):
    request = httpx.Request("GET", "https://ipapi.co/8.8.8.8/json/")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError("error", request=request, response=response)


class TestClassification:
    """Test mapping of adapter exceptions to short details."""

    def test_timeout(self):
        classified = classify_adapter_error(httpx.ConnectTimeout("slow"))
        assert classified.error_type == "timeout"
        assert classified.detail == "timeout"

    def test_http_status(self):
        classified = classify_adapter_error(_status_error(503))
        assert classified.status_code == 503
        assert classified.detail == "http_503"

    def test_connection(self):
        assert classify_adapter_error(httpx.ConnectError("refused")).detail == "connection"

    def test_parse(self):
        assert classify_adapter_error(KeyError("loc")).detail == "parse"
        assert classify_adapter_error(json.JSONDecodeError("x", "", 0)).detail == "parse"

    def test_adapter_failure_keeps_its_detail(self):
        classified = classify_adapter_error(AdapterFailure("ipinfo", "bogon"))
        assert classified.error_type == "adapter"
        assert classified.detail == "bogon"

    def test_unknown(self):
        assert classify_adapter_error(RuntimeError("boom")).detail == "unknown"


class TestMasking:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, "-"), ("", "-"), ("short", "***"), ("gemini-key-aaaa-1111", "...1111")],
    )
    def test_mask_credential(self, value, expected):
        assert mask_credential(value) == expected


class TestAllProvidersFailed:
    """Test the aggregate failure report."""

    def test_summary_and_client_response(self):
        error = AllProvidersFailedError(
            "ip-lookup",
            "8.8.8.8",
            [
                AdapterAttempt("ipinfo", "ipinfo", FailureReason.ADAPTER_FAILURE, "timeout"),
                AdapterAttempt("ipapi", "ipapi", FailureReason.RATE_LIMITED),
                AdapterAttempt("ipgeolocation", "ipgeolocation", FailureReason.ADAPTER_FAILURE, "http_500"),
            ],
        )

        assert error.get_reason_summary() == "2 adapter_failure, 1 rate_limited"
        assert "ipinfo=adapter_failure(timeout)" in error.build_log_message()
        body = error.build_client_error_response()["error"]
        assert body["type"] == "all_providers_failed"
        assert body["details"]["attempts"][1] == {
            "adapter": "ipapi",
            "provider": "ipapi",
            "reason": "rate_limited",
            "detail": "",
        }

    def test_unknown_capability_is_invalid_input(self):
        assert isinstance(UnknownCapabilityError("x"), InvalidInputError)


class TestResilientIO:
    """Test tolerant reads and atomic writes."""

    def test_atomic_write_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "nested" / "doc.json"
        atomic_write_json(target, {"a": 1})

        assert json.loads(target.read_text()) == {"a": 1}
        assert [p.name for p in target.parent.iterdir()] == ["doc.json"]

    def test_unserializable_data_keeps_previous_file(self, tmp_path):
        target = tmp_path / "doc.json"
        atomic_write_json(target, {"a": 1})

        with pytest.raises(TypeError):
            atomic_write_json(target, {"a": object()})

        assert json.loads(target.read_text()) == {"a": 1}

    @pytest.mark.parametrize("content", ["", "   ", "{broken", "[1, 2]"])
    def test_unusable_documents_yield_default(self, tmp_path, content):
        target = tmp_path / "doc.json"
        target.write_text(content)
        default = {"per_caller_overrides": {}}

        loaded = load_json_document(target, default, logging.getLogger("test"))

        assert loaded == default
        assert loaded is not default

    def test_writer_recovers_health(self, tmp_path):
        calls = []

        def flaky(path, data):
            calls.append(data)
            if len(calls) == 1:
                raise OSError("transient")
            atomic_write_json(path, data)

        writer = ResilientStateWriter(tmp_path / "doc.json", logging.getLogger("test"), writer=flaky)
        with pytest.raises(OSError):
            writer.write({"a": 1})
        assert not writer.is_healthy

        writer.write({"a": 2})
        assert writer.is_healthy
        assert writer.get_health_info()["failure_count"] == 0


class TestModels:
    """Test result serialization used by the cache."""

    def test_geo_result_round_trip_with_security(self):
        result = GeoLookupResult(
            ip="8.8.8.8", city="Mountain View", provider="ipinfo",
            security=SecurityReport(abuse_confidence=30),
        )
        data = result.to_dict()
        assert data["security"]["risk_level"] == "medium"
        assert GeoLookupResult.from_dict(data) == result

    def test_domain_result_tolerates_unknown_keys(self):
        result = DomainLookupResult.from_dict(
            {"domain": "google.com", "status": None, "extra": 1, "registrant": {"name": "x"}}
        )
        assert result.status == []
        assert isinstance(result.registrant, DomainContact)
        assert result.registrant.name == "x"

    def test_whitelisted_report(self):
        assert SecurityReport(is_whitelisted=True, abuse_confidence=99).risk_level == "whitelisted"
