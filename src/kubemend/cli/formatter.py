# src/kubemend/cli/formatter.py
import difflib
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from kubemend.core.models import FixChange, Severity
from kubemend.reporting.reporter import rule_id_for

_SEVERITY_STYLE = {
    Severity.CRITICAL: "bold red",
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
    Severity.HINT: "dim",
}

_STATUS_STYLE = {
    "HEALED": "green", "VALID": "green", "UNCHANGED": "green",
    "PREVIEW": "cyan", "PARTIAL": "yellow",
}


class ManifestFormatter:
    """
    ManifestFormatter: the visual heart of the CLI.
    Responsible for rendering diffs, change logs, validation findings and
    the final execution report.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def display_diff(self, original_text: str, healed_text: str, file_name: str):
        """Renders a colorized unified diff between the original and the repaired YAML."""
        diff_list = list(difflib.unified_diff(
            original_text.splitlines(),
            healed_text.splitlines(),
            fromfile=f"Original: {file_name}",
            tofile="Repaired Version",
            lineterm=""
        ))

        if not diff_list:
            self.console.print(f"[dim]ℹ No changes needed for {file_name}.[/dim]")
            return

        syntax = Syntax("\n".join(diff_list), "diff", theme="monokai", line_numbers=True)
        self.console.print(Panel(
            syntax,
            title=f"Proposed Repair: {file_name}",
            border_style="green"
        ))

    def show_changes(self, changes: List[FixChange], threshold: float):
        """One row per FixChange; rows below the confidence threshold are flagged for review."""
        if not changes:
            return

        table = Table(show_header=True, header_style="bold magenta", show_lines=False)
        table.add_column("Line", justify="right")
        table.add_column("Rule", style="cyan")
        table.add_column("Severity")
        table.add_column("Confidence", justify="right")
        table.add_column("Reason")

        for change in changes:
            style = _SEVERITY_STYLE.get(change.severity, "white")
            confidence = f"{change.confidence * 100:.0f}%"
            if change.confidence < threshold:
                confidence = f"[bold yellow]{confidence} ⚠[/bold yellow]"
            table.add_row(
                str(change.line) if change.line else "-",
                rule_id_for(change),
                f"[{style}]{change.severity.value}[/{style}]",
                confidence,
                change.reason,
            )
        self.console.print(table)

    def show_validation(self, file_name: str, validation: Any):
        """Parse errors, schema errors, builder diagnostics and advisories for one file."""
        for error in validation.parse_errors:
            self.console.print(f"[bold red]✖ {file_name}[/bold red] parse: {error}")
        for error in validation.schema_errors:
            self.console.print(f"[red]✖ {file_name}[/red] schema: {error}")
        for diagnostic in validation.diagnostics:
            self.console.print(
                f"[yellow]• {file_name}:{diagnostic.line}[/yellow] "
                f"{diagnostic.code.value}: {diagnostic.message}"
            )
        for advisory in validation.advisories:
            self.console.print(f"[dim]ℹ {file_name} {advisory}[/dim]")

    def print_final_table(self, reports: List[Dict[str, Any]], title: str = "KubeMend Execution Report"):
        """Builds the summary table shown at the very end of a run."""
        table = Table(title=title, show_header=True, show_lines=True, header_style="bold magenta")
        table.add_column("File Path", style="cyan")
        table.add_column("Kind")
        table.add_column("Status", style="bold")
        table.add_column("Changes", justify="right")
        table.add_column("Result", justify="center")

        for r in reports:
            status = r.get("status", "FAILED")
            color = _STATUS_STYLE.get(status, "red")
            changes = r.get("changes") or r.get("structural_changes") or []
            table.add_row(
                str(r.get("file_path")),
                str(r.get("kind", "Unknown")),
                f"[{color}]{status}[/{color}]",
                str(len(changes)),
                "✅" if r.get("success") else "❌"
            )

        self.console.print(table)

    def print_summary(self, summary: Dict[str, Any]):
        self.console.print(Panel(
            f"[bold white]Summary Report[/bold white]\n"
            f"════════════════════════════════════════\n"
            f"Total Files:     {summary['total_files']}\n"
            f"Success:         [green]{summary['successful']}[/green]\n"
            f"Changes:         {summary['total_changes']}\n"
            f"Written:         {summary['written_to_disk']}\n"
            f"System Errors:   [red]{summary['system_errors']}[/red]\n"
            f"Backups Created: {summary['backups_created']}",
            border_style="dim"
        ))
