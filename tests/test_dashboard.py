import pytest

from gw2dash.core import ItemBatcher
from gw2dash.dashboard import AccountDashboard
from gw2dash.exceptions import UpstreamUnavailable
from gw2dash.models import FetchFailure, ItemDetail, ItemSlot
from gw2dash.status import FailureReason
from tests.mocks.gw2 import FakeGW2API, make_gw2_client


@pytest.fixture
def dashboard(fake_api: FakeGW2API) -> AccountDashboard:
    client = make_gw2_client(fake_api)
    batcher = ItemBatcher(lookup=client, batch_window_seconds=0.02)
    return AccountDashboard(client=client, batcher=batcher)


@pytest.mark.asyncio
async def test_load_snapshot(dashboard: AccountDashboard):
    """Test that the snapshot holds every section and sorts characters by level."""
    snapshot = await dashboard.load()

    assert snapshot.account.name == "Tester.1234"
    assert [character.name for character in snapshot.characters] == ["Main", "Alt"]
    assert [entry.id for entry in snapshot.wallet] == [1, 4]
    assert len(snapshot.bank) == 3
    assert [slot.id for slot in snapshot.materials] == [19697]
    assert snapshot.failed_sections == []


@pytest.mark.asyncio
async def test_load_tolerates_optional_section_failure(
    dashboard: AccountDashboard, fake_api: FakeGW2API
):
    """Test that an unavailable optional section is reported instead of raised."""
    fake_api.failing_paths = {"/account/bank", "/account/wallet"}

    snapshot = await dashboard.load()

    assert snapshot.bank == []
    assert snapshot.wallet == []
    assert snapshot.failed_sections == ["bank", "wallet"]


@pytest.mark.asyncio
async def test_load_requires_account(dashboard: AccountDashboard, fake_api: FakeGW2API):
    """Test that a failing account endpoint propagates."""
    fake_api.failing_paths = {"/account"}

    with pytest.raises(UpstreamUnavailable):
        await dashboard.load()


@pytest.mark.asyncio
async def test_bank_resolves_slots_in_one_lookup(
    dashboard: AccountDashboard, fake_api: FakeGW2API
):
    """Test that every bank slot is resolved and duplicate ids share one lookup."""
    resolved = await dashboard.bank()

    assert [entry.slot.id for entry in resolved] == [19684, 19721, 19684]
    assert all(isinstance(entry.result, ItemDetail) for entry in resolved)
    assert resolved[0].detail == resolved[2].detail
    assert len(fake_api.item_requests) == 1
    assert fake_api.item_requests[0].url.params["ids"] == "19684,19721"


@pytest.mark.asyncio
async def test_resolve_slots_reports_unknown_items(
    dashboard: AccountDashboard, fake_api: FakeGW2API
):
    """Test that slots holding unknown items get a failure instead of a detail."""
    fake_api.unknown_item_ids = {99}

    resolved = await dashboard.resolve_slots([ItemSlot(id=99), ItemSlot(id=1)])

    assert isinstance(resolved[0].result, FetchFailure)
    assert resolved[0].result.reason == FailureReason.MISSING_FROM_RESPONSE
    assert resolved[0].detail is None
    assert resolved[1].detail is not None


@pytest.mark.asyncio
async def test_character_inventory(dashboard: AccountDashboard):
    """Test that inventory slots across bags are resolved."""
    resolved = await dashboard.character_inventory("Main")

    assert [(entry.slot.slot, entry.slot.id) for entry in resolved] == [(0, 19721), (3, 24)]
    assert resolved[1].slot.count == 7


@pytest.mark.asyncio
async def test_character_equipment(dashboard: AccountDashboard):
    """Test that equipment slots keep their slot name."""
    resolved = await dashboard.character_equipment("Main")

    assert [(entry.slot.slot, entry.slot.id) for entry in resolved] == [("Helm", 30684)]


@pytest.mark.asyncio
async def test_wallet_joins_currency_names(dashboard: AccountDashboard, fake_api: FakeGW2API):
    """Test that wallet balances are named and ordered like the in-game wallet."""
    fake_api.currencies[0]["order"] = 200

    lines = await dashboard.wallet()

    assert [(line.name, line.value) for line in lines] == [("Gem", 800), ("Coin", 123456)]


@pytest.mark.asyncio
async def test_wallet_unknown_currency(dashboard: AccountDashboard, fake_api: FakeGW2API):
    """Test that a balance without a known currency keeps a placeholder name."""
    fake_api.wallet.append({"id": 77, "value": 3})

    lines = await dashboard.wallet()

    by_id = {line.currency_id: line for line in lines}
    assert by_id[77].name == "Currency 77"
    assert by_id[77].icon is None
