import typing as t
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, TypeAdapter

from gw2dash.status import FailureReason


class Rarity(StrEnum):
    JUNK = "Junk"
    BASIC = "Basic"
    FINE = "Fine"
    MASTERWORK = "Masterwork"
    RARE = "Rare"
    EXOTIC = "Exotic"
    ASCENDED = "Ascended"
    LEGENDARY = "Legendary"


class ItemDetail(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    id: PositiveInt
    name: str
    icon: str | None = None
    rarity: Rarity
    type: str | None = None
    level: int = 0
    description: str | None = None
    chat_link: str | None = None
    vendor_value: int | None = None
    flags: tuple[str, ...] = ()


item_detail_list_adapter = TypeAdapter(list[ItemDetail])


class FetchFailure(BaseModel):
    """Cache sentinel for an item whose lookup did not produce a detail."""

    model_config = ConfigDict(frozen=True)

    item_id: int
    reason: FailureReason
    message: str = ""


ItemResult = ItemDetail | FetchFailure


class Account(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    world: int | None = None
    created: datetime | None = None
    access: list[str] = Field(default_factory=list)
    commander: bool = False
    fractal_level: int = 0
    daily_ap: int = 0
    monthly_ap: int = 0
    wvw_rank: int = 0


class Character(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    race: str | None = None
    gender: str | None = None
    profession: str | None = None
    level: int = 0
    guild: str | None = None
    age: int = 0
    created: datetime | None = None
    deaths: int = 0


character_list_adapter = TypeAdapter(list[Character])


class WalletEntry(BaseModel):
    id: int
    value: int


wallet_adapter = TypeAdapter(list[WalletEntry])


class Currency(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    description: str | None = None
    icon: str | None = None
    order: int = 0


currency_list_adapter = TypeAdapter(list[Currency])


class ItemSlot(BaseModel):
    """
    An occupied storage slot holding a stack of one item.

    ``slot`` is the position within its container (bank tab, bag, equipment
    slot name) and ``category`` the material storage category, when relevant.
    """

    model_config = ConfigDict(extra="allow")

    id: PositiveInt
    count: int = 1
    slot: int | str | None = None
    category: int | None = None


class MaterialSlot(BaseModel):
    id: PositiveInt
    category: int
    count: int = 0

    def to_item_slot(self) -> ItemSlot:
        return ItemSlot(id=self.id, count=self.count, category=self.category)


material_list_adapter = TypeAdapter(list[MaterialSlot])


class Bag(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: PositiveInt
    size: int = 0
    inventory: list[ItemSlot | None] = Field(default_factory=list)


class CharacterInventory(BaseModel):
    bags: list[Bag | None] = Field(default_factory=list)

    def slots(self) -> list[ItemSlot]:
        slots: list[ItemSlot] = []
        position = 0
        for bag in self.bags:
            if bag is None:
                continue
            for entry in bag.inventory:
                if entry is not None:
                    slots.append(entry.model_copy(update={"slot": position}))
                position += 1
        return slots


class EquipmentSlot(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: PositiveInt
    slot: str | None = None


class CharacterEquipment(BaseModel):
    equipment: list[EquipmentSlot] = Field(default_factory=list)


def bank_slots(payload: t.Any) -> list[ItemSlot]:
    """
    Convert a raw ``/account/bank`` payload into occupied slots.

    Parameters
    ----------
    payload : typing.Any
        JSON array where empty slots are ``null``.

    Returns
    -------
    list[ItemSlot]
        Occupied slots, each tagged with its index in the bank.
    """
    raw_slots = TypeAdapter(list[ItemSlot | None]).validate_python(payload)
    return [
        entry.model_copy(update={"slot": index})
        for index, entry in enumerate(raw_slots)
        if entry is not None
    ]


class WalletLine(BaseModel):
    currency_id: int
    name: str
    value: int
    icon: str | None = None


class ResolvedSlot(BaseModel):
    slot: ItemSlot
    result: ItemResult

    @property
    def detail(self) -> ItemDetail | None:
        return self.result if isinstance(self.result, ItemDetail) else None


class AccountSnapshot(BaseModel):
    account: Account
    characters: list[Character] = Field(default_factory=list)
    wallet: list[WalletEntry] = Field(default_factory=list)
    bank: list[ItemSlot] = Field(default_factory=list)
    materials: list[ItemSlot] = Field(default_factory=list)
    failed_sections: list[str] = Field(default_factory=list)
