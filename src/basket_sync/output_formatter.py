"""Output formatting for CLI and programmatic use."""

import json
from datetime import date, datetime
from typing import Any

from rich.console import Console
from rich.table import Table


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for output."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


class OutputFormatter:
    """Formats output for both Rich terminal and JSON modes."""

    def __init__(self, json_mode: bool = False):
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode
        self.console = Console()

    def output(self, data: dict[str, Any], message: str = "") -> None:
        """Output data in appropriate format.

        Args:
            data: Data to output
            message: Optional message for Rich mode
        """
        if self.json_mode:
            self._output_json(data)
        else:
            self._output_rich(data, message)

    def _output_json(self, data: dict[str, Any]) -> None:
        """Output as JSON to stdout."""
        print(json.dumps(data, cls=JSONEncoder, indent=2))

    def _output_rich(self, data: dict[str, Any], message: str) -> None:
        """Output with Rich formatting."""
        if message:
            self.console.print(f"[green]✓[/green] {message}")

        payload = data.get("data", {})
        if "stores" in payload:
            self._render_stores(payload["stores"])
        elif "shopping_list" in payload:
            self._render_shopping_list(payload["shopping_list"])
        elif "queue" in payload:
            self._render_queue(payload["queue"])
        elif "conflict" in payload and payload["conflict"].get("conflict"):
            self._render_conflict(payload["conflict"])

    def _render_stores(self, stores: list[dict]) -> None:
        if not stores:
            self.console.print("[dim]No stores yet[/dim]")
            return

        table = Table(title="Stores", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")

        for store in stores:
            table.add_row(store["id"], store["name"])

        self.console.print(table)

    def _render_shopping_list(self, items: list[dict]) -> None:
        """Render a store's shopping list grouped by store layout."""
        if not items:
            self.console.print("[dim]No items on the list[/dim]")
            return

        table = Table(title="Shopping List", show_header=True, header_style="bold cyan")
        table.add_column("", width=2)
        table.add_column("Item", style="cyan", no_wrap=False)
        table.add_column("Qty", style="magenta", justify="right")
        table.add_column("Aisle", style="green")
        table.add_column("Section", style="yellow")
        table.add_column("ID", style="dim")

        for item in items:
            status_icon = "[green]✓[/green]" if item.get("isChecked") else "○"
            name = item.get("itemName") or item.get("notes") or "-"
            if item.get("isIdea"):
                name = f"[italic]{name}[/italic]"

            qty = item.get("qty")
            qty_text = "-" if qty is None else f"{qty:g}"
            if item.get("unitAbbreviation") and qty is not None:
                qty_text = f"{qty_text} {item['unitAbbreviation']}"

            table.add_row(
                status_icon,
                name,
                qty_text,
                item.get("aisleName") or "-",
                item.get("sectionName") or "-",
                item["id"],
            )

        self.console.print(table)
        checked = sum(1 for item in items if item.get("isChecked"))
        self.console.print(f"\nTotal items: {len(items)} ({checked} checked)")

    def _render_queue(self, queue: list[dict]) -> None:
        """Render pending mutations, oldest first."""
        if not queue:
            self.console.print("[dim]No pending changes[/dim]")
            return

        table = Table(title="Pending Changes", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim")
        table.add_column("Queued", style="green")
        table.add_column("Operation", style="cyan")
        table.add_column("Request")
        table.add_column("Retries", justify="right")
        table.add_column("Last Error", style="red")

        for mutation in queue:
            queued_at = datetime.fromtimestamp(mutation["timestamp"] / 1000)
            table.add_row(
                mutation["id"],
                queued_at.strftime("%Y-%m-%d %H:%M"),
                mutation["operation"],
                f"{mutation['method']} {mutation['endpoint']}",
                str(mutation["retryCount"]),
                mutation.get("lastError") or "",
            )

        self.console.print(table)

    def _render_conflict(self, conflict: dict) -> None:
        user = conflict.get("conflictUser") or {}
        self.console.print(
            f"[yellow]![/yellow] {conflict.get('itemName') or 'Item'} was already "
            f"changed by {user.get('name', 'another user')}"
        )

    def error(self, message: str, error_code: str | None = None) -> None:
        """Output error message.

        Args:
            message: Error message
            error_code: Optional error code
        """
        if self.json_mode:
            output = {"success": False, "error": message}
            if error_code:
                output["error_code"] = error_code
            print(json.dumps(output))
        else:
            self.console.print(f"[red]✗ Error:[/red] {message}")

    def success(self, message: str, data: dict | None = None) -> None:
        """Output success message.

        Args:
            message: Success message
            data: Optional data to include
        """
        if self.json_mode:
            output: dict[str, Any] = {"success": True, "message": message}
            if data:
                output["data"] = data
            print(json.dumps(output, cls=JSONEncoder))
        else:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        """Output warning message."""
        if self.json_mode:
            print(json.dumps({"warning": message}))
        else:
            self.console.print(f"[yellow]![/yellow] {message}")
