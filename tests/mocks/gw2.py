import asyncio
import typing as t

import httpx

from gw2dash.client import GW2Client
from gw2dash.exceptions import UpstreamUnavailable
from gw2dash.models import ItemDetail

RARITIES = ["Junk", "Basic", "Fine", "Masterwork", "Rare", "Exotic", "Ascended", "Legendary"]


def make_item_payload(item_id: int) -> dict[str, t.Any]:
    return {
        "id": item_id,
        "name": f"Item {item_id}",
        "icon": f"https://render.guildwars2.com/file/{item_id}.png",
        "rarity": RARITIES[item_id % len(RARITIES)],
        "type": "Trophy",
        "level": item_id % 80,
        "description": f"Description of item {item_id}",
        "chat_link": "[&AgEAAAA=]",
        "vendor_value": 10,
        "flags": ["NoSell"],
    }


class FakeItemLookup:
    """
    In-memory bulk lookup recording every call.

    Ids listed in ``failing_ids`` make the whole call raise, ids in
    ``unknown_ids`` are left out of the response, and ``hang`` makes every
    call block until ``release`` is set.
    """

    def __init__(self, max_batch_size: int = 200) -> None:
        self.max_batch_size = max_batch_size
        self.calls: list[list[int]] = []
        self.failing_ids: set[int] = set()
        self.unknown_ids: set[int] = set()
        self.hang = False
        self.release = asyncio.Event()

    async def lookup_items(self, ids: t.Iterable[int]) -> dict[int, ItemDetail]:
        requested = list(ids)
        self.calls.append(requested)
        if self.hang:
            await self.release.wait()
        await asyncio.sleep(delay=0)
        if self.failing_ids.intersection(requested):
            raise UpstreamUnavailable(path="/items", status_code=503, detail="unavailable")
        return {
            item_id: ItemDetail.model_validate(make_item_payload(item_id))
            for item_id in requested
            if item_id not in self.unknown_ids
        }

    @property
    def requested_ids(self) -> list[int]:
        return [item_id for call in self.calls for item_id in call]


class FakeGW2API:
    """
    Emulate the subset of Guild Wars 2 API endpoints used by the dashboard.
    """

    def __init__(self, api_key: str = "test-key") -> None:
        self.api_key = api_key
        self.requests: list[httpx.Request] = []
        self.failing_paths: set[str] = set()
        self.unknown_item_ids: set[int] = set()
        self.account = {
            "id": "A1B2C3",
            "name": "Tester.1234",
            "world": 1001,
            "created": "2015-08-01T12:00:00Z",
            "access": ["GuildWars2", "HeartOfThorns"],
            "commander": True,
            "fractal_level": 100,
            "daily_ap": 5000,
            "monthly_ap": 700,
            "wvw_rank": 350,
        }
        self.characters = [
            {"name": "Alt", "race": "Asura", "profession": "Engineer", "level": 42, "deaths": 3},
            {"name": "Main", "race": "Norn", "profession": "Guardian", "level": 80, "deaths": 12},
        ]
        self.wallet = [{"id": 1, "value": 123456}, {"id": 4, "value": 800}]
        self.currencies = [
            {"id": 1, "name": "Coin", "description": "Money", "order": 101, "icon": "coin.png"},
            {"id": 4, "name": "Gem", "description": "Gems", "order": 102, "icon": "gem.png"},
        ]
        self.bank = [
            {"id": 19684, "count": 250},
            None,
            {"id": 19721, "count": 3},
            {"id": 19684, "count": 5},
        ]
        self.materials = [
            {"id": 19697, "category": 5, "count": 120},
            {"id": 19699, "category": 5, "count": 0},
        ]
        self.inventory = {
            "bags": [
                {"id": 8932, "size": 2, "inventory": [{"id": 19721, "count": 1}, None]},
                None,
                {"id": 8932, "size": 2, "inventory": [None, {"id": 24, "count": 7}]},
            ]
        }
        self.equipment = {"equipment": [{"id": 30684, "slot": "Helm"}]}

    def _json_response(self, *, status_code: int, payload: t.Any) -> httpx.Response:
        return httpx.Response(status_code=status_code, json=payload)

    def _handle_items(self, *, request: httpx.Request) -> httpx.Response:
        raw_ids = request.url.params.get("ids", "")
        ids = [int(value) for value in raw_ids.split(",") if value]
        known = [item_id for item_id in ids if item_id not in self.unknown_item_ids]
        if not known:
            return self._json_response(
                status_code=404, payload={"text": "all ids provided are invalid"}
            )
        status_code = 206 if len(known) < len(ids) else 200
        return self._json_response(
            status_code=status_code,
            payload=[make_item_payload(item_id) for item_id in known],
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        """
        Dispatch incoming requests to mock handlers.

        Parameters
        ----------
        request : httpx.Request
            Incoming HTTP request.

        Returns
        -------
        httpx.Response
            Mock response.
        """
        self.requests.append(request)
        path = request.url.path.removeprefix("/v2")
        if path in self.failing_paths:
            return self._json_response(status_code=503, payload={"text": "API not active"})

        if path == "/items":
            return self._handle_items(request=request)
        if path == "/currencies":
            return self._json_response(status_code=200, payload=self.currencies)

        if request.headers.get("authorization") != f"Bearer {self.api_key}":
            return self._json_response(status_code=401, payload={"text": "Invalid access token"})

        routes: dict[str, t.Any] = {
            "/account": self.account,
            "/characters": self.characters,
            "/account/wallet": self.wallet,
            "/account/bank": self.bank,
            "/account/materials": self.materials,
            "/characters/Main/inventory": self.inventory,
            "/characters/Main/equipment": self.equipment,
        }
        if path in routes:
            return self._json_response(status_code=200, payload=routes[path])
        return self._json_response(status_code=404, payload={"text": "no such id"})

    @property
    def item_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith("/items")]


def make_gw2_client(api: FakeGW2API, **kwargs: t.Any) -> GW2Client:
    """
    Create a GW2Client routed to a fake API.

    Parameters
    ----------
    api : FakeGW2API
        Fake API handling the requests.
    **kwargs : typing.Any
        Extra ``GW2Client`` arguments.

    Returns
    -------
    GW2Client
        Client whose transport is the fake API.
    """
    client = GW2Client(api_key=kwargs.pop("api_key", api.api_key), **kwargs)
    transport = httpx.MockTransport(handler=api.handler)
    client._client_factory = lambda: httpx.AsyncClient(transport=transport)
    return client
