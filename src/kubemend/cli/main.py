#!/usr/bin/env python3
"""
KUBEMEND CLI
------------
Primary interface: `fix`, `validate` and `reorganize` over a manifest file
or a directory tree, with rich terminal output or JSON for pipelines.

Exit code is 0 when every processed file ends valid, 1 otherwise.

Author: KubeMend Team
Date: 2026-01-16
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# Rich library components for high-fidelity terminal UI
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    BarColumn,
    TaskProgressColumn
)

from kubemend import __version__
from kubemend.cli.formatter import ManifestFormatter
from kubemend.core.config import ConfigManager
from kubemend.core.engine import EngineError, ManifestEngine
from kubemend.reporting.reporter import ErrorReporter

# Global console for consistent styling across the application
console = Console()


class KubeMendCLI:
    """
    CLI wrapper that translates user commands into Engine actions.
    """

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="kubemend",
            description="KubeMend - Fault-tolerant Kubernetes YAML repair",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.formatter = ManifestFormatter(console)
        self._setup_args()

    def _setup_args(self):
        """Configures the command-line flags and subcommands."""
        self.parser.add_argument("--version", action="version", version=f"kubemend v{__version__}")
        self.parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
        subparsers = self.parser.add_subparsers(dest="command", metavar="Command")

        # 'fix' subcommand - the five-pass repair
        fix_parser = subparsers.add_parser("fix", help="Repair YAML manifests")
        fix_parser.add_argument("path", help="Path to a YAML file or directory")
        fix_parser.add_argument("--dry-run", action="store_true", help="Preview results without writing")
        fix_parser.add_argument("--diff", action="store_true", default=None, help="Show a unified diff per file")
        fix_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")
        fix_parser.add_argument("--aggressive", action="store_true", default=None,
                                help="Enable riskier repairs (numeric inference, unknown list keys)")
        fix_parser.add_argument("--threshold", type=float, default=None,
                                help="Confidence below which changes are flagged for review")
        fix_parser.add_argument("--max-iterations", type=int, default=None,
                                help="Parser-guided repair attempts (default: 3)")
        fix_parser.add_argument("--indent", type=int, default=None, help="Indentation width (default: 2)")
        fix_parser.add_argument("--no-backup", action="store_true", help="Do not keep a backup copy")
        fix_parser.add_argument("--ext", default=".yaml", help="File extension filter (default: .yaml)")

        # 'validate' subcommand - read-only checks
        validate_parser = subparsers.add_parser("validate", help="Validate manifests without changing them")
        validate_parser.add_argument("path", help="Path to a YAML file or directory")
        validate_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")
        validate_parser.add_argument("--ext", default=".yaml", help="File extension filter (default: .yaml)")

        # 'reorganize' subcommand - structural relocation only
        reorganize_parser = subparsers.add_parser("reorganize", help="Move misplaced fields only")
        reorganize_parser.add_argument("path", help="Path to a YAML file or directory")
        reorganize_parser.add_argument("--dry-run", action="store_true", help="Preview results without writing")
        reorganize_parser.add_argument("--no-backup", action="store_true", help="Do not keep a backup copy")
        reorganize_parser.add_argument("--ext", default=".yaml", help="File extension filter (default: .yaml)")

    def print_header(self, subtitle: str):
        console.print(Panel.fit(
            f"[bold cyan]KubeMend v{__version__}[/bold cyan]",
            title=f"[bold white]{subtitle}[/bold white]",
            border_style="cyan"
        ))

    # --- engine plumbing ---

    def _build_engine(self, args: argparse.Namespace) -> Optional[Dict[str, Any]]:
        input_path = Path(args.path).resolve()
        if not input_path.exists():
            console.print(f"[bold red]Error:[/bold red] Path '{args.path}' not found.")
            return None

        workspace = input_path if input_path.is_dir() else input_path.parent
        config = ConfigManager(workspace)
        options = config.fixer_options(
            confidence_threshold=getattr(args, "threshold", None),
            aggressive=getattr(args, "aggressive", None),
            max_iterations=getattr(args, "max_iterations", None),
            indent_size=getattr(args, "indent", None),
        )
        engine = ManifestEngine(str(workspace), options)
        try:
            files = engine.discover(str(input_path), args.ext)
        except EngineError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            return None
        return {"engine": engine, "config": config, "files": files}

    def _run_batch(self, engine: ManifestEngine, files: List[Path],
                   operation: Callable[[str], Dict[str, Any]], quiet: bool) -> List[Dict[str, Any]]:
        if quiet:
            return engine.run_batch(files, operation)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=40),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True
        ) as progress:
            task_id = progress.add_task("Processing manifests...", total=len(files))
            return engine.run_batch(
                files, operation,
                progress_callback=lambda done, total: progress.update(task_id, completed=done)
            )

    # --- commands ---

    def cmd_fix(self, args: argparse.Namespace) -> int:
        setup = self._build_engine(args)
        if setup is None:
            return 1
        engine, config, files = setup["engine"], setup["config"], setup["files"]
        if not files:
            console.print("[bold yellow]⚠️  No YAML files found.[/bold yellow]")
            return 0

        backup = config.backup and not args.no_backup
        show_diff = args.diff if args.diff is not None else config.show_diff
        reports = self._run_batch(
            engine, files,
            lambda path: engine.fix_file(path, dry_run=args.dry_run, backup=backup),
            quiet=args.json
        )

        if args.json:
            self._emit_json([self._fix_payload(r) for r in reports], engine.generate_summary(reports))
            return _exit_code(reports)

        for report in reports:
            if report.get("status") == "ENGINE_ERROR":
                console.print(f"[bold red]Error in {report['file_path']}:[/bold red] {report['errors'][0]}")
                continue
            if report["changes"]:
                console.print(f"\n[bold cyan]{report['file_path']}[/bold cyan]")
                self.formatter.show_changes(report["changes"], engine.options.confidence_threshold)
            if show_diff and report.get("modified"):
                self.formatter.display_diff(report["original"], report["fixed_content"], report["file_path"])
            for error in report.get("errors", []):
                console.print(f"[red]✖ {report['file_path']}:[/red] {error}")

        self.formatter.print_final_table(reports)
        self.formatter.print_summary(engine.generate_summary(reports))
        return _exit_code(reports)

    def cmd_validate(self, args: argparse.Namespace) -> int:
        setup = self._build_engine(args)
        if setup is None:
            return 1
        engine, files = setup["engine"], setup["files"]
        if not files:
            console.print("[bold yellow]⚠️  No YAML files found.[/bold yellow]")
            return 0

        reports = self._run_batch(engine, files, engine.validate_file, quiet=args.json)

        if args.json:
            payload = []
            for r in reports:
                entry = {"file": r["file_path"], "status": r["status"]}
                if "validation" in r:
                    entry.update(r["validation"].to_dict())
                else:
                    entry.update({"isValid": False, "errors": r.get("errors", [])})
                payload.append(entry)
            self._emit_json(payload, engine.generate_summary(reports))
            return _exit_code(reports)

        for report in reports:
            if "validation" in report:
                self.formatter.show_validation(report["file_path"], report["validation"])
            else:
                console.print(f"[bold red]Error in {report['file_path']}:[/bold red] {report['errors'][0]}")
        self.formatter.print_final_table(reports, title="KubeMend Validation Report")
        return _exit_code(reports)

    def cmd_reorganize(self, args: argparse.Namespace) -> int:
        setup = self._build_engine(args)
        if setup is None:
            return 1
        engine, config, files = setup["engine"], setup["config"], setup["files"]
        if not files:
            console.print("[bold yellow]⚠️  No YAML files found.[/bold yellow]")
            return 0

        backup = config.backup and not args.no_backup
        reports = self._run_batch(
            engine, files,
            lambda path: engine.reorganize_file(path, dry_run=args.dry_run, backup=backup),
            quiet=False
        )
        for report in reports:
            for change in report.get("structural_changes", []):
                console.print(f"[cyan]{report['file_path']}[/cyan] {change.type.value}: {change.description} "
                              f"[dim]({change.confidence * 100:.0f}%)[/dim]")
            for error in report.get("errors", []):
                console.print(f"[red]✖ {report['file_path']}:[/red] {error}")
            if args.dry_run and report.get("modified"):
                self.formatter.display_diff(report["original"], report["fixed_content"], report["file_path"])

        self.formatter.print_final_table(reports, title="KubeMend Reorganize Report")
        return _exit_code(reports)

    # --- output helpers ---

    @staticmethod
    def _fix_payload(report: Dict[str, Any]) -> Dict[str, Any]:
        if "result" not in report:
            return {"file": report["file_path"], "status": report["status"], "isValid": False,
                    "errors": report.get("errors", [])}
        reporter = ErrorReporter()
        reporter.add_changes(report["changes"])
        result = report["result"]
        payload = {"file": report["file_path"], "status": report["status"], "written": report["written"]}
        payload.update(result.to_dict())
        payload["summary"] = reporter.generate_summary(result.is_valid).to_dict()
        return payload

    @staticmethod
    def _emit_json(files: List[Dict[str, Any]], summary: Dict[str, Any]):
        sys.stdout.write(json.dumps({"files": files, "summary": summary}, indent=2, default=str) + "\n")

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Primary routing entry point."""
        args = self.parser.parse_args(argv)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s"
        )

        if args.command is None:
            self.print_header("Kubernetes YAML Repair")
            self.parser.print_help()
            return 0

        commands = {"fix": self.cmd_fix, "validate": self.cmd_validate, "reorganize": self.cmd_reorganize}
        if not getattr(args, "json", False):
            self.print_header({"fix": "YAML Repair Engine", "validate": "Manifest Validation",
                               "reorganize": "Structure Reorganizer"}[args.command])
        return commands[args.command](args)


def _exit_code(reports: List[Dict[str, Any]]) -> int:
    return 0 if all(r.get("success") for r in reports) else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point with interrupt handling."""
    try:
        return KubeMendCLI().run(argv)
    except KeyboardInterrupt:
        console.print("\n[bold red]Terminated by user.[/bold red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
