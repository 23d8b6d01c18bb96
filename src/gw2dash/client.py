"""
Async client for the Guild Wars 2 REST API.
"""

from __future__ import annotations

import typing as t
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from gw2dash.config import DEFAULT_BASE_URL
from gw2dash.exceptions import UpstreamUnavailable
from gw2dash.models import (
    Account,
    Character,
    CharacterEquipment,
    CharacterInventory,
    Currency,
    ItemDetail,
    ItemSlot,
    WalletEntry,
    bank_slots,
    character_list_adapter,
    currency_list_adapter,
    item_detail_list_adapter,
    material_list_adapter,
    wallet_adapter,
)

log = structlog.get_logger(__name__)

MAX_IDS_PER_REQUEST = 200

M = t.TypeVar(name="M")


class GW2Client:
    """
    Thin wrapper over the ``/v2`` endpoints used by the dashboard.

    Every failure (network error, timeout, non-2xx status, unexpected payload)
    surfaces as ``UpstreamUnavailable``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        lang: str | None = None,
        timeout_seconds: float = 30.0,
        max_batch_size: int = MAX_IDS_PER_REQUEST,
    ) -> None:
        """
        Initialize the client.

        Parameters
        ----------
        api_key : str | None, optional
            Account API key sent as a bearer credential. Public endpoints work without it.
        base_url : str, optional
            API root, without trailing slash.
        lang : str | None, optional
            Language code for localized names and descriptions.
        timeout_seconds : float, optional
            Per-request HTTP timeout.
        max_batch_size : int, optional
            Maximum number of ids accepted by a single bulk lookup.
        """
        self.api_key = api_key.strip() if api_key and api_key.strip() else None
        self.base_url = base_url.rstrip("/")
        self.lang = lang
        self.max_batch_size = max_batch_size
        self._client_factory: t.Callable[[], httpx.AsyncClient] = lambda: httpx.AsyncClient(
            timeout=timeout_seconds
        )

    def _build_headers(self, *, authenticated: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if authenticated and self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def _extract_error_text(*, response: httpx.Response) -> str | None:
        try:
            payload = response.json()
        except ValueError:
            return response.reason_phrase or None
        if isinstance(payload, dict) and payload.get("text"):
            return str(payload["text"])
        return response.reason_phrase or None

    async def _get(
        self,
        *,
        path: str,
        params: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        """
        Issue a GET request and raise ``UpstreamUnavailable`` on failure.

        Parameters
        ----------
        path : str
            Path relative to the API root.
        params : dict[str, str] | None, optional
            Query parameters.
        authenticated : bool, optional
            Whether to send the API key.

        Returns
        -------
        httpx.Response
            Successful response.
        """
        query = dict(params or {})
        if self.lang:
            query.setdefault("lang", self.lang)
        try:
            async with self._client_factory() as client:
                response = await client.get(
                    url=f"{self.base_url}{path}",
                    params=query,
                    headers=self._build_headers(authenticated=authenticated),
                )
        except httpx.HTTPError as error:
            log.error(event="GW2 API request failed", path=path, error=str(object=error))
            raise UpstreamUnavailable(path=path, detail=str(object=error)) from error

        if response.is_success:
            return response

        detail = self._extract_error_text(response=response)
        log.error(
            event="GW2 API returned an error",
            path=path,
            status_code=response.status_code,
            detail=detail,
        )
        raise UpstreamUnavailable(path=path, status_code=response.status_code, detail=detail)

    async def _get_model(
        self,
        *,
        path: str,
        parse: t.Callable[[t.Any], M],
        params: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> M:
        response = await self._get(path=path, params=params, authenticated=authenticated)
        try:
            return parse(response.json())
        except (ValueError, ValidationError) as error:
            log.error(event="Unexpected GW2 API payload", path=path, error=str(object=error))
            raise UpstreamUnavailable(
                path=path,
                status_code=response.status_code,
                detail=f"unexpected payload: {error}",
            ) from error

    async def lookup_items(self, ids: t.Iterable[int]) -> dict[int, ItemDetail]:
        """
        Fetch details for up to ``max_batch_size`` items in one request.

        Parameters
        ----------
        ids : typing.Iterable[int]
            Item identifiers.

        Returns
        -------
        dict[int, ItemDetail]
            Details keyed by item id. Unknown ids are absent.
        """
        unique_ids = sorted(set(ids))
        if not unique_ids:
            return {}
        if len(unique_ids) > self.max_batch_size:
            raise ValueError(
                f"Cannot look up {len(unique_ids)} items at once, "
                f"the limit is {self.max_batch_size}"
            )
        try:
            items = await self._get_model(
                path="/items",
                params={"ids": ",".join(str(item_id) for item_id in unique_ids)},
                parse=item_detail_list_adapter.validate_python,
            )
        except UpstreamUnavailable as error:
            # The API answers 404 when none of the requested ids exist.
            if error.status_code == 404:
                log.info(event="No valid ids in item lookup", id_count=len(unique_ids))
                return {}
            raise
        log.debug(event="Looked up items", requested=len(unique_ids), returned=len(items))
        return {item.id: item for item in items}

    async def get_account(self) -> Account:
        return await self._get_model(path="/account", parse=Account.model_validate)

    async def get_characters(self) -> list[Character]:
        return await self._get_model(
            path="/characters",
            params={"page": "0"},
            parse=character_list_adapter.validate_python,
        )

    async def get_character_inventory(self, name: str) -> CharacterInventory:
        return await self._get_model(
            path=f"/characters/{quote(name, safe='')}/inventory",
            parse=CharacterInventory.model_validate,
        )

    async def get_character_equipment(self, name: str) -> CharacterEquipment:
        return await self._get_model(
            path=f"/characters/{quote(name, safe='')}/equipment",
            parse=CharacterEquipment.model_validate,
        )

    async def get_wallet(self) -> list[WalletEntry]:
        return await self._get_model(path="/account/wallet", parse=wallet_adapter.validate_python)

    async def get_bank(self) -> list[ItemSlot]:
        return await self._get_model(path="/account/bank", parse=bank_slots)

    async def get_materials(self) -> list[ItemSlot]:
        materials = await self._get_model(
            path="/account/materials",
            parse=material_list_adapter.validate_python,
        )
        return [material.to_item_slot() for material in materials if material.count > 0]

    async def get_currencies(self) -> list[Currency]:
        return await self._get_model(
            path="/currencies",
            params={"ids": "all"},
            parse=currency_list_adapter.validate_python,
            authenticated=False,
        )
