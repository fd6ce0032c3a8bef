#!/usr/bin/env python3
"""
Console interface for the onboarding wizard.

Uploads policy/claim/cancel files, shows the suggested mapping and its
validation, applies command-line assignments, submits, and follows the
transform jobs until they finish.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table
from rich.text import Text

from .core.config import settings
from .core.logging_config import configure_logging
from .domain.errors import MappingValidationError, OnboardingError
from .domain.mapping import catalog
from .domain.processing.poller import StatusPoller, overall_progress
from .domain.wizard import WizardController, WizardEvent
from .integrations.transform_api import TransformApiClient
from .schemas import FileType, JobState, OverallStatus, ValidationResult

Assignment = Tuple[FileType, str, Optional[str]]

JOB_STYLES = {
    JobState.DONE: "green",
    JobState.RUNNING: "blue",
    JobState.QUEUED: "yellow",
    JobState.FAILED: "red",
}


def parse_assignment(value: str) -> Assignment:
    """
    Parse ``TYPE:SOURCE=CANONICAL``; an empty CANONICAL clears the mapping.

    Raises:
        argparse.ArgumentTypeError: If the value is malformed
    """
    head, sep, canonical = value.partition("=")
    file_type_raw, colon, source = head.partition(":")
    if not sep or not colon or not source:
        raise argparse.ArgumentTypeError(f"Expected TYPE:SOURCE=CANONICAL, got '{value}'")
    try:
        file_type = FileType(file_type_raw.strip().lower())
    except ValueError:
        raise argparse.ArgumentTypeError(f"Unknown file type '{file_type_raw}'")
    return file_type, source.strip(), canonical.strip() or None


class OnboardingConsole:
    """Terminal front end for a single wizard session."""

    def __init__(self, controller: WizardController, console: Optional[Console] = None):
        self.console = console or Console()
        self.controller = controller
        self.controller.subscribe(self.on_event)

    def on_event(self, event: WizardEvent):
        if event.kind == "upload_failed":
            self.console.print(f"[red]✗ Upload failed:[/red] {event.detail.get('error')}")
        elif event.kind == "file_uploaded":
            self.console.print(
                f"[green]✓[/green] {event.detail.get('file_name')} uploaded "
                f"([dim]{event.detail.get('fields')} fields detected[/dim])"
            )
        elif event.kind == "submission_failed":
            self.console.print(f"[red]✗ Submission failed:[/red] {event.detail.get('error')}")
        elif event.kind == "tracking_failed":
            self.console.print(f"[red]✗ {event.detail.get('error')}[/red] [dim]{event.detail.get('cause')}[/dim]")

    def print_checklist(self):
        """Print the canonical fields every file type should provide."""
        for file_type in catalog.file_types():
            table = Table(title=f"{file_type.value.capitalize()} file")
            table.add_column("Field", style="cyan", no_wrap=True)
            table.add_column("Type", style="magenta")
            table.add_column("Required")
            table.add_column("Description", style="white")
            for spec in catalog.fields_for(file_type):
                table.add_row(
                    spec.name,
                    spec.semantic_type.value,
                    "[red]yes[/red]" if spec.required else "[dim]no[/dim]",
                    spec.description,
                )
            self.console.print(table)

    def render_mappings(self) -> Table:
        state = self.controller.mapping_state
        table = Table(title=f"Field Mapping ({state.completion_percentage() if state else 0}% mapped)")
        table.add_column("File", style="dim")
        table.add_column("Source field", style="white")
        table.add_column("Canonical field", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Confidence", justify="right")
        table.add_column("Filled", justify="right")
        if state is None:
            return table

        for mapping in state.all():
            spec = state.resolved_field(mapping.file_type, mapping.canonical_field)
            table.add_row(
                mapping.file_type.value,
                mapping.source_field,
                mapping.canonical_field or "[dim]-[/dim]",
                spec.semantic_type.value if spec else mapping.detected_type,
                f"{round(mapping.confidence * 100)}%",
                f"{round(mapping.populated_pct)}%",
            )
        return table

    def print_validation(self, result: ValidationResult):
        lines: List[str] = [f"[red]✗ {error}[/red]" for error in result.errors]
        lines += [f"[yellow]! {warning}[/yellow]" for warning in result.warnings]
        if result.is_valid:
            lines.insert(0, "[green]✓ Mapping is ready to submit[/green]")
        self.console.print(
            Panel(
                "\n".join(lines),
                title="Validation",
                border_style="green" if result.is_valid else "red",
            )
        )

    def render_jobs(self) -> Panel:
        controller = self.controller
        table = Table(expand=True)
        table.add_column("File")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Message", style="dim")
        for job in controller.jobs:
            style = JOB_STYLES.get(job.status, "white")
            table.add_row(
                job.file_type.value,
                Text(job.status.value, style=style),
                f"{round(job.progress * 100)}%" if job.status == JobState.RUNNING else "",
                job.message,
            )

        if controller.overall == OverallStatus.DONE:
            title, border = "All files have been processed successfully", "green"
        elif controller.overall == OverallStatus.FAILED:
            title, border = "Some files failed to process", "red"
        else:
            title, border = "Your files are being transformed and validated", "blue"
        return Panel(
            table,
            title=f"{title} ({round(overall_progress(controller.jobs))}%)",
            border_style=border,
        )

    async def run(
        self,
        files: Dict[FileType, Path],
        assignments: List[Assignment],
        assume_yes: bool = False,
    ) -> int:
        """Walk the wizard end to end; returns the process exit code."""
        controller = self.controller
        self.print_checklist()
        controller.continue_to_upload()

        for file_type, path in files.items():
            with self.console.status(f"[bold green]Uploading {path.name}...", spinner="dots"):
                try:
                    await controller.upload_file(file_type, path.name, path.read_bytes())
                except (OnboardingError, OSError) as e:
                    self.console.print(f"[red]❌ {file_type.value}: {escape(str(e))}[/red]")

        if not controller.can_proceed_to_mapping():
            self.console.print("[red]❌ Please upload at least a policy file before proceeding.[/red]")
            return 1

        controller.proceed_to_mapping()
        for file_type, source, canonical in assignments:
            controller.assign(file_type, source, canonical)

        self.console.print(self.render_mappings())
        result = controller.validation()
        self.print_validation(result)
        if not result.is_valid:
            return 1

        if not assume_yes and not Confirm.ask("Submit mappings and start processing?"):
            self.console.print("[yellow]Submission skipped.[/yellow]")
            return 1

        try:
            await controller.submit_mappings()
        except MappingValidationError as e:
            self.console.print(f"[red]❌ {e}[/red]")
            return 1
        except OnboardingError:
            return 1

        self.console.print("[green]✅ Mappings saved. Transform started.[/green]")
        with Live(self.render_jobs(), console=self.console, refresh_per_second=4) as live:
            unsubscribe = controller.subscribe(
                lambda event: live.update(self.render_jobs()) if event.kind == "status_updated" else None
            )
            try:
                await controller.wait_for_tracking()
            finally:
                unsubscribe()

        return 0 if controller.overall == OverallStatus.DONE else 1


async def _run(args: argparse.Namespace) -> int:
    files: Dict[FileType, Path] = {}
    for file_type in FileType:
        value = getattr(args, file_type.value)
        if value:
            files[file_type] = Path(value)

    async with TransformApiClient(args.base_url) as client:
        poller = StatusPoller(client, interval_seconds=args.interval)
        controller = WizardController(client, poller=poller)
        onboarding_console = OnboardingConsole(controller)
        try:
            return await onboarding_console.run(files, args.assign, assume_yes=args.yes)
        except (KeyboardInterrupt, asyncio.CancelledError):
            controller.cancel_tracking("Interrupted")
            onboarding_console.console.print("\n[yellow]Interrupted. Tracking stopped.[/yellow]")
            return 130


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Insurance onboarding console - upload, map and process policy/claim/cancel files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --policy policies.csv
  %(prog)s --policy p.xlsx --claim c.csv --assign claim:SettleDt=paid_date --yes
  %(prog)s --policy p.csv --assign policy:Coverage=          # clear a suggestion
        """
    )
    parser.add_argument('--policy', required=True, help='Policy file (CSV or Excel)')
    parser.add_argument('--claim', help='Claim file (optional)')
    parser.add_argument('--cancel', help='Cancel file (optional)')
    parser.add_argument(
        '--assign',
        action='append',
        type=parse_assignment,
        default=[],
        metavar='TYPE:SOURCE=CANONICAL',
        help='Override a suggested mapping (repeatable)'
    )
    parser.add_argument('--yes', '-y', action='store_true', help='Submit without asking for confirmation')
    parser.add_argument('--base-url', default=settings.api_base_url, help='Transform backend URL')
    parser.add_argument(
        '--interval',
        type=float,
        default=settings.status_poll_interval_seconds,
        help='Seconds between status checks (default: %(default)s)'
    )
    parser.add_argument('--log-level', default="WARNING", help='Log level for console output')

    args = parser.parse_args()
    configure_logging(args.log_level)

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
