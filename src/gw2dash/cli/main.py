import asyncio
import typing as t
from datetime import datetime
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from gw2dash.api import build_client, item_batching
from gw2dash.cli.callbacks import item_ids_callback, sort_by_callback
from gw2dash.cli.completions import complete_sort_by
from gw2dash.config import Settings
from gw2dash.dashboard import AccountDashboard
from gw2dash.exceptions import MissingApiKey, UpstreamUnavailable
from gw2dash.models import FetchFailure, ItemDetail, ItemResult, Rarity, ResolvedSlot
from gw2dash.utils.logging import logging_context, setup_logging

app = typer.Typer(no_args_is_help=True)

RARITY_STYLES = {
    Rarity.JUNK: "grey50",
    Rarity.BASIC: "white",
    Rarity.FINE: "dodger_blue1",
    Rarity.MASTERWORK: "green3",
    Rarity.RARE: "gold1",
    Rarity.EXOTIC: "orange1",
    Rarity.ASCENDED: "deep_pink2",
    Rarity.LEGENDARY: "medium_purple1",
}
RARITY_ORDER = {rarity: index for index, rarity in enumerate(Rarity)}
# Wallet balance of currency 1 is the account's coin, in copper.
COIN_CURRENCY_ID = 1

R = t.TypeVar(name="R")

ApiKeyOption = Annotated[
    str | None,
    typer.Option(
        help="Guild Wars 2 API key, defaults to the GW2_API_KEY environment variable",
        show_default=False,
    ),
]
SortByOption = Annotated[
    str,
    typer.Option(
        "-s",
        "--sort-by",
        help="The field to sort items by",
        rich_help_panel="Ordering",
        callback=sort_by_callback,
        autocompletion=complete_sort_by,
    ),
]


def run_command(coro: t.Coroutine[t.Any, t.Any, R]) -> R:
    try:
        return asyncio.run(coro)
    except (MissingApiKey, UpstreamUnavailable) as error:
        typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(1)


def load_settings(api_key: str | None, require_key: bool = True) -> Settings:
    try:
        settings = Settings.from_env(api_key=api_key)
    except ValidationError as error:
        fields = ", ".join(".".join(str(part) for part in issue["loc"]) for issue in error.errors())
        typer.echo(f"Error: invalid settings ({fields}): check the GW2DASH_* variables", err=True)
        raise typer.Exit(1)
    if require_key:
        try:
            settings.require_api_key()
        except MissingApiKey as error:
            typer.echo(f"Error: {error}", err=True)
            raise typer.Exit(1)
    return settings


def format_coins(copper: int) -> str:
    """Render a copper amount as gold, silver and copper, e.g. ``12g 34s 56c``."""
    gold, remainder = divmod(copper, 10_000)
    silver, copper = divmod(remainder, 100)
    if gold:
        return f"{gold:,}g {silver:02d}s {copper:02d}c"
    if silver:
        return f"{silver}s {copper:02d}c"
    return f"{copper}c"


def format_rarity(rarity: Rarity) -> str:
    return f"[{RARITY_STYLES[rarity]}]{rarity}[/{RARITY_STYLES[rarity]}]"


def sort_key(sort_by: str, item_id: int, result: ItemResult, count: int) -> tuple:
    if isinstance(result, ItemDetail):
        name, rarity = result.name, RARITY_ORDER[result.rarity]
    else:
        name, rarity = "", -1
    if sort_by == "name":
        return (name.lower(), item_id)
    if sort_by == "rarity":
        return (-rarity, name.lower(), item_id)
    if sort_by == "count":
        return (-count, item_id)
    return (item_id,)


def print_items(results: dict[int, ItemResult], sort_by: str) -> None:
    table = Table("ID", "Name", "Rarity", "Type", "Level", title="Items")
    ordered = sorted(results.items(), key=lambda pair: sort_key(sort_by, pair[0], pair[1], 1))
    for item_id, result in ordered:
        if isinstance(result, FetchFailure):
            table.add_row(str(item_id), f"[red]unavailable ({result.reason})[/red]", "", "", "")
            continue
        table.add_row(
            str(item_id),
            result.name,
            format_rarity(result.rarity),
            result.type or "",
            str(result.level),
        )
    Console().print(table)


def print_slots(resolved: list[ResolvedSlot], title: str, sort_by: str) -> None:
    table = Table("Slot", "ID", "Name", "Rarity", "Count", title=title)
    ordered = sorted(
        resolved,
        key=lambda entry: sort_key(sort_by, entry.slot.id, entry.result, entry.slot.count),
    )
    for entry in ordered:
        detail = entry.detail
        slot = "" if entry.slot.slot is None else str(entry.slot.slot)
        if detail is None:
            name, rarity = "[red]unavailable[/red]", ""
        else:
            name, rarity = detail.name, format_rarity(detail.rarity)
        table.add_row(slot, str(entry.slot.id), name, rarity, str(entry.slot.count))
    Console().print(table)


async def with_dashboard(
    settings: Settings,
    action: t.Callable[[AccountDashboard], t.Awaitable[R]],
) -> R:
    client = build_client(settings)
    async with item_batching(settings=settings, client=client) as batcher:
        return await action(AccountDashboard(client=client, batcher=batcher))


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Show debug logs on stderr"),
    ] = False,
):
    """Inspect a Guild Wars 2 account from the command line"""
    setup_logging(verbose=verbose)


@app.command(name="items")
def show_items(
    item_ids: Annotated[
        list[int],
        typer.Argument(help="Item ids to look up", callback=item_ids_callback),
    ],
    api_key: ApiKeyOption = None,
    sort_by: SortByOption = "id",
):
    """Look up item details"""
    settings = load_settings(api_key=api_key, require_key=False)

    async def resolve() -> dict[int, ItemResult]:
        client = build_client(settings)
        async with item_batching(settings=settings, client=client) as batcher:
            return await batcher.request_items(item_ids)

    with logging_context(command="items"):
        results = run_command(resolve())
    print_items(results=results, sort_by=sort_by)


@app.command(name="account")
def show_account(api_key: ApiKeyOption = None):
    """Show the account summary and its characters"""
    settings = load_settings(api_key=api_key)
    with logging_context(command="account"):
        snapshot = run_command(with_dashboard(settings, lambda dashboard: dashboard.load()))

    account = snapshot.account
    coins = [entry.value for entry in snapshot.wallet if entry.id == COIN_CURRENCY_ID]
    summary = {
        "Name": account.name,
        "World": account.world,
        "Created": (
            datetime.strftime(account.created, "%Y-%m-%d") if account.created else "unknown"
        ),
        "Access": ", ".join(account.access),
        "Gold": format_coins(coins[0]) if coins else "unknown",
        "Commander": "yes" if account.commander else "no",
        "Fractal Level": account.fractal_level,
        "WvW Rank": account.wvw_rank,
        "Bank Slots Used": len(snapshot.bank),
        "Materials Stored": sum(slot.count for slot in snapshot.materials),
    }
    if snapshot.failed_sections:
        summary["Unavailable"] = f"[yellow]{', '.join(snapshot.failed_sections)}[/yellow]"
    values = "\n".join(f"{key}: {value}" for key, value in summary.items())
    console = Console()
    console.print(Panel(values, title=account.name, expand=False, highlight=True))

    table = Table("Name", "Profession", "Race", "Level", "Deaths", title="Characters")
    for character in snapshot.characters:
        table.add_row(
            character.name,
            character.profession or "",
            character.race or "",
            str(character.level),
            str(character.deaths),
        )
    console.print(table)


@app.command(name="bank")
def show_bank(api_key: ApiKeyOption = None, sort_by: SortByOption = "id"):
    """Show bank contents"""
    settings = load_settings(api_key=api_key)
    with logging_context(command="bank"):
        resolved = run_command(with_dashboard(settings, lambda dashboard: dashboard.bank()))
    print_slots(resolved=resolved, title="Bank", sort_by=sort_by)


@app.command(name="materials")
def show_materials(api_key: ApiKeyOption = None, sort_by: SortByOption = "id"):
    """Show material storage contents"""
    settings = load_settings(api_key=api_key)
    with logging_context(command="materials"):
        resolved = run_command(with_dashboard(settings, lambda dashboard: dashboard.materials()))
    print_slots(resolved=resolved, title="Materials", sort_by=sort_by)


@app.command(name="inventory")
def show_inventory(
    name: Annotated[str, typer.Argument(help="The character name")],
    api_key: ApiKeyOption = None,
    sort_by: SortByOption = "id",
):
    """Show a character's bag contents"""
    settings = load_settings(api_key=api_key)
    with logging_context(command="inventory", character=name):
        resolved = run_command(
            with_dashboard(settings, lambda dashboard: dashboard.character_inventory(name))
        )
    print_slots(resolved=resolved, title=f"{name}'s inventory", sort_by=sort_by)


@app.command(name="equipment")
def show_equipment(
    name: Annotated[str, typer.Argument(help="The character name")],
    api_key: ApiKeyOption = None,
):
    """Show a character's equipped items"""
    settings = load_settings(api_key=api_key)
    with logging_context(command="equipment", character=name):
        resolved = run_command(
            with_dashboard(settings, lambda dashboard: dashboard.character_equipment(name))
        )
    print_slots(resolved=resolved, title=f"{name}'s equipment", sort_by="id")


@app.command(name="wallet")
def show_wallet(api_key: ApiKeyOption = None):
    """Show wallet currencies"""
    settings = load_settings(api_key=api_key)
    with logging_context(command="wallet"):
        lines = run_command(with_dashboard(settings, lambda dashboard: dashboard.wallet()))
    table = Table("Currency", "Amount", title="Wallet")
    for line in lines:
        if line.currency_id == COIN_CURRENCY_ID:
            amount = format_coins(line.value)
        else:
            amount = f"{line.value:,}"
        table.add_row(line.name, amount)
    Console().print(table)
