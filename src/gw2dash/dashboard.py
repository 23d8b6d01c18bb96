"""
Account dashboard: fetches account sections and resolves item details for
every occupied slot through the item batcher.
"""

from __future__ import annotations

import asyncio
import typing as t

import structlog

from gw2dash.client import GW2Client
from gw2dash.core import ItemBatcher
from gw2dash.exceptions import UpstreamUnavailable
from gw2dash.models import AccountSnapshot, ItemSlot, ResolvedSlot, WalletLine

log = structlog.get_logger(__name__)

T = t.TypeVar(name="T")


class AccountDashboard:
    """
    Read-only view over one account.

    Parameters
    ----------
    client : GW2Client
        Client authenticated with the account's API key.
    batcher : ItemBatcher
        Batcher used to resolve item details for slots.
    """

    def __init__(self, client: GW2Client, batcher: ItemBatcher) -> None:
        self._client = client
        self._batcher = batcher

    async def _optional_section(
        self,
        *,
        section: str,
        fetch: t.Callable[[], t.Awaitable[list[T]]],
        failed_sections: list[str],
    ) -> list[T]:
        try:
            return await fetch()
        except UpstreamUnavailable as error:
            log.warning(event="Account section unavailable", section=section, error=str(error))
            failed_sections.append(section)
            return []

    async def load(self) -> AccountSnapshot:
        """
        Fetch the account summary and its sections.

        Account and characters are required; wallet, bank and materials are
        left empty (and listed in ``failed_sections``) when they cannot be fetched,
        for instance when the key lacks the matching permission.

        Returns
        -------
        AccountSnapshot
            Snapshot of the account.
        """
        account, characters = await asyncio.gather(
            self._client.get_account(),
            self._client.get_characters(),
        )
        log.info(event="Loaded account", account=account.name, character_count=len(characters))

        failed_sections: list[str] = []
        wallet, bank, materials = await asyncio.gather(
            self._optional_section(
                section="wallet", fetch=self._client.get_wallet, failed_sections=failed_sections
            ),
            self._optional_section(
                section="bank", fetch=self._client.get_bank, failed_sections=failed_sections
            ),
            self._optional_section(
                section="materials",
                fetch=self._client.get_materials,
                failed_sections=failed_sections,
            ),
        )
        characters = sorted(characters, key=lambda character: (-character.level, character.name))
        return AccountSnapshot(
            account=account,
            characters=characters,
            wallet=wallet,
            bank=bank,
            materials=materials,
            failed_sections=sorted(failed_sections),
        )

    async def resolve_slots(self, slots: t.Iterable[ItemSlot]) -> list[ResolvedSlot]:
        """
        Resolve the item detail of every slot, one request per slot.

        Parameters
        ----------
        slots : typing.Iterable[ItemSlot]
            Occupied slots.

        Returns
        -------
        list[ResolvedSlot]
            Slots paired with their item detail or failure, in input order.
        """
        slot_list = list(slots)
        results = await asyncio.gather(
            *(self._batcher.request_item(slot.id) for slot in slot_list)
        )
        return [ResolvedSlot(slot=slot, result=result) for slot, result in zip(slot_list, results)]

    async def bank(self) -> list[ResolvedSlot]:
        return await self.resolve_slots(await self._client.get_bank())

    async def materials(self) -> list[ResolvedSlot]:
        return await self.resolve_slots(await self._client.get_materials())

    async def character_inventory(self, name: str) -> list[ResolvedSlot]:
        inventory = await self._client.get_character_inventory(name)
        return await self.resolve_slots(inventory.slots())

    async def character_equipment(self, name: str) -> list[ResolvedSlot]:
        equipment = await self._client.get_character_equipment(name)
        slots = [ItemSlot(id=entry.id, slot=entry.slot) for entry in equipment.equipment]
        return await self.resolve_slots(slots)

    async def wallet(self) -> list[WalletLine]:
        """
        Join wallet balances with currency names and icons.

        Returns
        -------
        list[WalletLine]
            Wallet lines ordered like the in-game wallet.
        """
        entries, currencies = await asyncio.gather(
            self._client.get_wallet(),
            self._client.get_currencies(),
        )
        by_id = {currency.id: currency for currency in currencies}
        lines: list[tuple[int, WalletLine]] = []
        for entry in entries:
            currency = by_id.get(entry.id)
            lines.append(
                (
                    currency.order if currency else len(by_id) + entry.id,
                    WalletLine(
                        currency_id=entry.id,
                        name=currency.name if currency else f"Currency {entry.id}",
                        value=entry.value,
                        icon=currency.icon if currency else None,
                    ),
                )
            )
        return [line for _, line in sorted(lines, key=lambda pair: pair[0])]
