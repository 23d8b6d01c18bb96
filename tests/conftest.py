import pytest

from tests.mocks.gw2 import FakeGW2API, FakeItemLookup


@pytest.fixture(autouse=True)
def test_set_env(monkeypatch):
    monkeypatch.setenv("GW2_API_KEY", "test-key")
    for name in (
        "GW2DASH_BASE_URL",
        "GW2DASH_LANG",
        "GW2DASH_BATCH_WINDOW_SECONDS",
        "GW2DASH_MAX_BATCH_DELAY_SECONDS",
        "GW2DASH_MAX_BATCH_SIZE",
        "GW2DASH_WAIT_TIMEOUT_SECONDS",
        "GW2DASH_LOOKUP_TIMEOUT_SECONDS",
        "GW2DASH_ITEM_TTL_SECONDS",
        "GW2DASH_FAILURE_TTL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_lookup() -> FakeItemLookup:
    """
    Create an in-memory item lookup.
    """
    return FakeItemLookup()


@pytest.fixture
def fake_api() -> FakeGW2API:
    """
    Create a fake Guild Wars 2 API.
    """
    return FakeGW2API()
