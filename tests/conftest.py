"""
Pytest fixtures for the GiftZap SDK tests.
"""
import httpx
import pytest

from giftzap_sdk._rate_limited_log import reset_rate_limits
from giftzap_sdk.config import NetworkConfig
from giftzap_sdk.ledger.stub import StubLedgerClient
from giftzap_sdk.metadata import MetadataResolver

from tests.test_helpers import FIXED_TIME, TEST_GATEWAY, TEST_JWT, TEST_MIRROR, TEST_PINNER_URL


@pytest.fixture(autouse=True)
def _reset_state():
    """Forget rate-limited log keys and cached networks between tests."""
    reset_rate_limits()
    NetworkConfig._networks_cache = None
    yield
    reset_rate_limits()


@pytest.fixture
def clock():
    """Clock that advances one second per call."""
    state = {"now": FIXED_TIME}

    def _tick():
        state["now"] += 1
        return state["now"]

    return _tick


@pytest.fixture
def stub_ledger(clock):
    return StubLedgerClient(clock=clock)


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient(timeout=5.0) as client:
        yield client


@pytest.fixture
def resolver(http_client):
    return MetadataResolver(
        primary_gateway=TEST_GATEWAY,
        fallback_gateways=[TEST_MIRROR],
        pinata_jwt=TEST_JWT,
        pinata_api_url=TEST_PINNER_URL,
        http_client=http_client,
    )
