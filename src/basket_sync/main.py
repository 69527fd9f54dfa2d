"""CLI entry point for Basket Sync."""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, TypeVar

import typer
from pydantic import ValidationError

from .config import ConfigManager
from .database import BaseDatabase, DatabaseType
from .date_utils import filter_snoozed
from .errors import ApiError, format_error_message
from .factory import DatabaseFactory
from .logging_config import setup_logging
from .models import ShoppingListItemInput
from .output_formatter import OutputFormatter
from .sync import get_queue_status_message, sync_pending_changes

T = TypeVar("T")

app = typer.Typer(
    name="basket",
    help="Shared shopping lists with offline sync",
    no_args_is_help=True,
)

# Global state for formatter, config and factory (set by callback)
formatter: OutputFormatter = OutputFormatter()
config: ConfigManager | None = None
factory: DatabaseFactory | None = None


def get_config() -> ConfigManager:
    """Get or create ConfigManager instance."""
    global config
    if config is None:
        config = ConfigManager()
    return config


def get_factory() -> DatabaseFactory:
    """Get or create the DatabaseFactory using config values."""
    global factory
    if factory is None:
        factory = DatabaseFactory(get_config())
    return factory


def run_with_database(operation: Callable[[BaseDatabase], Awaitable[T]]) -> T:
    """Run an async operation against the configured database, then close it."""

    async def runner() -> T:
        db_factory = get_factory()
        try:
            database = await db_factory.get_database()
            return await operation(database)
        finally:
            await db_factory.close()

    return asyncio.run(runner())


def run_cached(key: tuple, load: Callable[[BaseDatabase], Awaitable[T]]) -> T:
    """Read through the factory's cache, loading from the database on a miss."""

    async def operation(db_factory: DatabaseFactory) -> T:
        database = await db_factory.get_database()
        return await db_factory.cache.get(key, lambda: load(database))

    return run_with_factory(operation)


def run_with_factory(operation: Callable[[DatabaseFactory], Awaitable[T]]) -> T:
    """Run an async operation that needs the queue or HTTP client, then clean up."""

    async def runner() -> T:
        db_factory = get_factory()
        try:
            return await operation(db_factory)
        finally:
            await db_factory.close()

    return asyncio.run(runner())


def fail(error: Exception, mutation: bool = False) -> None:
    """Report an error and exit with code 1."""
    if isinstance(error, ApiError):
        formatter.error(format_error_message(error), error_code=error.code)
        if mutation and error.is_network_error:
            formatter.warning("The change was saved and will be sent by 'basket sync'")
    elif isinstance(error, ValidationError):
        formatter.error(str(error), error_code="VALIDATION_ERROR")
    else:
        formatter.error(str(error))
    raise typer.Exit(code=1)


@app.callback()
def main(
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON for programmatic use")
    ] = False,
    config_path: Annotated[
        Path | None, typer.Option("--config", help="Path to a config file")
    ] = None,
    fake: Annotated[
        bool, typer.Option("--fake", help="Use the in-memory demo database")
    ] = False,
) -> None:
    """Basket Sync CLI - Shopping lists that keep working offline."""
    global formatter, config, factory

    formatter = OutputFormatter(json_mode=json_output)
    config = ConfigManager(config_path)
    setup_logging(config.app.log_level)

    database_type = DatabaseType.FAKE if fake else None
    factory = DatabaseFactory(config, database_type=database_type)


@app.command()
def stores() -> None:
    """List your stores."""
    try:
        result = run_cached(("stores",), lambda db: db.load_all_stores())
        formatter.output(
            {"success": True, "data": {"stores": [store.to_wire() for store in result]}}
        )
    except Exception as e:
        fail(e)


@app.command(name="add-store")
def add_store(
    name: Annotated[str, typer.Argument(help="Store name")],
) -> None:
    """Create a store."""
    try:
        store = run_with_database(lambda db: db.insert_store(name))
        message = f"Added store '{store.name}'"
        formatter.output(
            {"success": True, "message": message, "data": {"store": store.to_wire()}}, message
        )
    except Exception as e:
        fail(e, mutation=True)


@app.command(name="list")
def list_items(
    store_id: Annotated[str, typer.Argument(help="Store ID")],
    show_snoozed: Annotated[
        bool, typer.Option("--all", help="Include snoozed items")
    ] = False,
) -> None:
    """View a store's shopping list."""
    try:
        items = run_cached(
            ("shopping_list", store_id), lambda db: db.get_shopping_list_items(store_id)
        )
        if not show_snoozed:
            items = filter_snoozed(items)
        formatter.output(
            {"success": True, "data": {"shopping_list": [item.to_wire() for item in items]}}
        )
    except Exception as e:
        fail(e)


@app.command()
def add(
    store_id: Annotated[str, typer.Argument(help="Store ID")],
    name: Annotated[str, typer.Argument(help="Item name, or the note for an idea")],
    qty: Annotated[float | None, typer.Option("--qty", "-q", help="Quantity to buy")] = None,
    unit: Annotated[str | None, typer.Option("--unit", "-u", help="Quantity unit ID")] = None,
    notes: Annotated[str | None, typer.Option("--notes", "-n", help="Additional notes")] = None,
    idea: Annotated[
        bool, typer.Option("--idea", help="Add a free-form idea instead of an item")
    ] = False,
) -> None:
    """Add an item to a store's shopping list."""
    try:
        if idea:
            params = ShoppingListItemInput(store_id=store_id, notes=name, is_idea=True)
        else:
            params = ShoppingListItemInput(
                store_id=store_id, name=name, qty=qty, unit_id=unit, notes=notes
            )
        item = run_with_database(lambda db: db.upsert_shopping_list_item(params))
        message = f"Added '{name}' to the list"
        formatter.output(
            {"success": True, "message": message, "data": {"item": item.to_wire()}}, message
        )
    except Exception as e:
        fail(e, mutation=True)


@app.command()
def check(
    store_id: Annotated[str, typer.Argument(help="Store ID")],
    item_id: Annotated[str, typer.Argument(help="Shopping list item ID")],
    uncheck: Annotated[bool, typer.Option("--uncheck", help="Uncheck instead")] = False,
) -> None:
    """Check off (or uncheck) a shopping list item."""
    try:
        result = run_with_database(
            lambda db: db.toggle_shopping_list_item_checked(store_id, item_id, not uncheck)
        )
        if result.conflict:
            message = ""
        else:
            message = f"{'Unchecked' if uncheck else 'Checked'} {result.item_name or item_id}"
        formatter.output(
            {"success": True, "message": message, "data": {"conflict": result.to_wire()}},
            message,
        )
    except Exception as e:
        fail(e, mutation=True)


@app.command(name="clear-checked")
def clear_checked(
    store_id: Annotated[str, typer.Argument(help="Store ID")],
) -> None:
    """Remove all checked items from a store's list."""
    try:
        count = run_with_database(lambda db: db.clear_checked_shopping_list_items(store_id))
        message = f"Cleared {count} checked item{'' if count == 1 else 's'}"
        formatter.output(
            {"success": True, "message": message, "data": {"count": count}}, message
        )
    except Exception as e:
        fail(e, mutation=True)


@app.command()
def setting(
    key: Annotated[str, typer.Argument(help="Setting name")],
    value: Annotated[str | None, typer.Argument(help="New value; omit to show")] = None,
) -> None:
    """Show or change an app setting."""

    async def operation(db_factory: DatabaseFactory):
        database = await db_factory.get_database()
        if value is not None:
            await database.set_app_setting(key, value)
        return await db_factory.cache.get(
            ("app_settings", key), lambda: database.get_app_setting(key)
        )

    try:
        result = run_with_factory(operation)
    except Exception as e:
        fail(e)

    if result is None:
        formatter.error(f"No value set for '{key}'", error_code="NOT_FOUND")
        raise typer.Exit(code=1)

    message = f"{result.key} = {result.value}"
    formatter.output(
        {"success": True, "message": message, "data": {"setting": result.to_wire()}}, message
    )


@app.command()
def pending() -> None:
    """Show changes waiting to be synced."""

    async def load_queue(db_factory: DatabaseFactory):
        await db_factory.queue.ensure_loaded()
        return db_factory.queue.get_queue()

    try:
        queue = run_with_factory(load_queue)
        message = get_queue_status_message(len(queue), is_processing=False, is_online=True)
        formatter.output(
            {
                "success": True,
                "message": message or "No pending changes",
                "data": {"queue": [mutation.to_wire() for mutation in queue]},
            },
            message or "",
        )
    except Exception as e:
        fail(e)


@app.command()
def sync() -> None:
    """Send pending changes to the server."""
    try:
        result = run_with_factory(
            lambda db_factory: sync_pending_changes(
                db_factory.queue, db_factory.client, db_factory.cache
            )
        )
        output = {
            "success": result.failed == 0,
            "message": result.message,
            "data": {"synced": result.success, "failed": result.failed},
        }
        if result.failed:
            if formatter.json_mode:
                formatter.output(output)
            else:
                formatter.warning(result.message)
            raise typer.Exit(code=1)
        formatter.output(output, result.message)
    except typer.Exit:
        raise
    except Exception as e:
        fail(e)


@app.command()
def discard(
    mutation_id: Annotated[
        str | None, typer.Argument(help="ID of the pending change to discard")
    ] = None,
    discard_all: Annotated[
        bool, typer.Option("--all", help="Discard every pending change")
    ] = False,
) -> None:
    """Discard pending changes, keeping the server's version."""
    if not mutation_id and not discard_all:
        formatter.error("Give a change ID or --all", error_code="MISSING_ARGUMENT")
        raise typer.Exit(code=1)

    async def remove(db_factory: DatabaseFactory) -> int:
        queue = db_factory.queue
        await queue.ensure_loaded()
        if discard_all:
            count = queue.get_queue_size()
            await queue.clear_queue()
            return count
        if all(mutation.id != mutation_id for mutation in queue.get_queue()):
            return 0
        await queue.remove_mutation(mutation_id)
        return 1

    try:
        count = run_with_factory(remove)
    except Exception as e:
        fail(e)

    if mutation_id and not discard_all and count == 0:
        formatter.error(f"No pending change with id '{mutation_id}'", error_code="NOT_FOUND")
        raise typer.Exit(code=1)

    message = f"Discarded {count} pending change{'' if count == 1 else 's'}"
    formatter.output({"success": True, "message": message, "data": {"count": count}}, message)


if __name__ == "__main__":
    app()
