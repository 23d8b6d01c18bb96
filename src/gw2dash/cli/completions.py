from gw2dash.cli.enums import SortField


def complete_sort_by(value: str):
    for field in SortField.__members__.values():
        if field.startswith(value):
            yield field
