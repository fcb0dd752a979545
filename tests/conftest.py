"""
Pytest configuration and fixtures for the test suite.
"""
import copy
import os
import sys

import httpx
import pytest
import pytest_asyncio

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from lookup_rotator.config import DEFAULT_CONFIG, build_lookup_config  # noqa: E402
from lookup_rotator.credential_store import CredentialStore  # noqa: E402
from lookup_rotator.failure_logger import configure_failure_logger  # noqa: E402

from tests.fixtures.vendor_payloads import VendorRouter  # noqa: E402


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def failure_logs(tmp_path):
    """Keep failures.log inside the test's temp directory."""
    logs_dir = tmp_path / "logs"
    configure_failure_logger(logs_dir)
    yield logs_dir
    configure_failure_logger(None)


@pytest.fixture
def env_vars():
    """
    Slot layout used across tests:
    gemini slots 1 and 3 configured, slot 2 a placeholder; groq slot 1 only;
    ipinfo keyless; ipgeolocation, abuseipdb and whoisapi keyed.
    """
    return {
        "GEMINI_API_KEY_1": "gemini-key-aaaa-1111",
        "GEMINI_API_KEY_2": "your_gemini_key_here",
        "GEMINI_API_KEY_3": "gemini-key-cccc-3333",
        "GROQ_API_KEY_1": "groq-key-aaaa-1111",
        "IPAPI_API_KEY": "ipapi-key-1234567",
        "IP_GEOLOCATION_API_KEY": "ipgeo-key-1234567",
        "ABUSEIPDB_API_KEY": "abuse-key-1234567",
        "WHOISAPI_KEY": "whois-key-1234567",
    }


@pytest.fixture
def raw_config():
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def lookup_config(raw_config):
    return build_lookup_config(raw_config)


@pytest.fixture
def settings_path(tmp_path):
    return tmp_path / "api_settings.json"


@pytest.fixture
def store(lookup_config, env_vars, settings_path):
    return CredentialStore(lookup_config.providers, env_vars, settings_path)


@pytest.fixture
def vendor_router():
    return VendorRouter()


@pytest_asyncio.fixture
async def http_client(vendor_router):
    client = httpx.AsyncClient(transport=httpx.MockTransport(vendor_router))
    yield client
    await client.aclose()
