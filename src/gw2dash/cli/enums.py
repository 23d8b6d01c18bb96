from enum import StrEnum


class SortField(StrEnum):
    id = "id"
    name = "name"
    rarity = "rarity"
    count = "count"
