import typer

from gw2dash.cli.enums import SortField


def sort_by_callback(ctx: typer.Context, value: str):
    if ctx.resilient_parsing:
        return
    if value not in SortField.__members__.values():
        raise typer.BadParameter(
            message=f"'{value}' is not a valid sort field, supported fields are: {', '.join(SortField.__members__.values())}",
            param_hint="--sort-by, -s",
        )
    return value


def item_ids_callback(ctx: typer.Context, value: list[int]):
    if ctx.resilient_parsing:
        return
    invalid = [item_id for item_id in value if item_id <= 0]
    if invalid:
        raise typer.BadParameter(
            message=f"item ids must be positive integers, got: {', '.join(str(i) for i in invalid)}",
        )
    return value
