"""
Command line interface for Pothole Snap.

Usage examples:
    pothole-snap analyze road.jpg
    pothole-snap analyze road.jpg --lat 52.5200 --lon 13.4050 --save-report report.json
    pothole-snap check --endpoint http://localhost:8000
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.json import JSON
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from shared.config import ServiceSettings, get_settings
from shared.images import ImageBlob
from shared.logging import setup_logging

from .client import InferenceClient
from .errors import CallFailure
from .pipeline import AnalysisOrchestrator
from .session import GeoPoint, InspectionSession, InspectionStep, run_inspection

app = typer.Typer(help="AI-assisted pothole inspection: capture, analyze, report.")
console = Console()


async def run_with_progress(
    session: InspectionSession, endpoint: Optional[str], settings: ServiceSettings
) -> InspectionSession:
    """Run one inspection against the inference service with a progress bar."""
    async with InferenceClient.from_settings(settings, base_url=endpoint) as client:
        orchestrator = AnalysisOrchestrator(client)

        with Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=console,
            transient=True,
        ) as progress:
            task_id = progress.add_task("Starting analysis...", total=100)

            def on_change(current: InspectionSession) -> None:
                progress.update(
                    task_id,
                    completed=current.progress,
                    description=current.message or "Starting analysis...",
                )

            return await run_inspection(session, orchestrator, on_change=on_change)


def display_report(session: InspectionSession) -> None:
    """Display the analysis results in a formatted table."""
    report = session.report

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Finding", style="cyan", width=18)
    table.add_column("Value", style="white")

    table.add_row(
        "Analysis image",
        "Highlighted by detection"
        if report.analysis_image_source == "highlighted"
        else "Original photo",
    )

    if report.dimensions:
        dims = report.dimensions
        table.add_row(
            "Dimensions",
            f"{dims.length:g} x {dims.width:g} x {dims.depth:g} {escape(dims.unit)} (L x W x D)",
        )
    if report.material:
        table.add_row(
            "Road material",
            f"{escape(report.material.material_type)} "
            f"({report.material.confidence:.0%} confidence)",
        )
    if report.severity:
        color = {"minor": "green", "moderate": "yellow", "severe": "red"}[
            report.severity.severity.value
        ]
        table.add_row(
            "Severity", f"[{color}]{report.severity.severity.value.upper()}[/{color}]"
        )
        table.add_row("Justification", escape(report.severity.justification))
    if report.volume:
        table.add_row("Volume", f"{report.volume.volume:g} cm³")
        table.add_row("Repair material", escape(report.volume.material_suggestion))

    table.add_row("Location", str(session.location) if session.location else "Not tagged")

    console.print(
        Panel(
            table,
            title="[bold]Pothole Report[/bold]",
            subtitle=f"run {report.run_id} in {report.processing_time_ms} ms",
        )
    )


def save_report(session: InspectionSession, path: Path) -> None:
    """Write the report and its location tag as JSON."""
    payload = {
        "report": session.report.model_dump(mode="json", by_alias=True),
        "location": session.location.model_dump() if session.location else None,
    }
    path.write_text(json.dumps(payload, indent=2))


@app.command()
def analyze(
    image_path: Path = typer.Argument(..., help="Photo of the pothole (JPEG, PNG or WebP)"),
    endpoint: Optional[str] = typer.Option(
        None, "--endpoint", "-e", help="Inference service base URL"
    ),
    lat: Optional[float] = typer.Option(None, "--lat", help="Latitude of the pothole"),
    lon: Optional[float] = typer.Option(None, "--lon", help="Longitude of the pothole"),
    save_report_path: Optional[Path] = typer.Option(
        None, "--save-report", "-s", help="Save the report JSON to this file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Analyze a pothole photo and print the assessment."""
    settings = get_settings()
    setup_logging("cli", settings, sink=sys.stderr, level="DEBUG" if verbose else "WARNING")

    image_config = settings.get_image_config()
    try:
        image = ImageBlob.from_file(
            image_path,
            max_size_mb=image_config.max_size_mb,
            allowed_formats=image_config.allowed_formats,
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗ Could not read image: {escape(str(e))}[/red]")
        raise typer.Exit(code=2)

    location = None
    if (lat is None) != (lon is None):
        console.print("[red]✗ --lat and --lon must be given together[/red]")
        raise typer.Exit(code=2)
    if lat is not None:
        try:
            location = GeoPoint(lat=lat, lon=lon)
        except ValidationError:
            console.print("[red]✗ Coordinates out of range[/red]")
            raise typer.Exit(code=2)

    session = InspectionSession().capture(image, location)
    console.print(f"[yellow]Analyzing {escape(image_path.name)}...[/yellow]")

    result = asyncio.run(
        run_with_progress(session, endpoint, settings)
    )

    if result.step != InspectionStep.RESULTS:
        console.print(f"[red]✗ {escape(result.error or 'Analysis failed')}[/red]")
        raise typer.Exit(code=1)

    console.print("[green]✓ Analysis complete[/green]")
    display_report(result)

    if save_report_path:
        save_report(result, save_report_path)
        console.print(f"[blue]Report saved to: {escape(str(save_report_path))}[/blue]")


@app.command()
def check(
    endpoint: Optional[str] = typer.Option(
        None, "--endpoint", "-e", help="Inference service base URL"
    ),
):
    """Check that the inference service is up."""
    settings = get_settings()
    setup_logging("cli", settings, sink=sys.stderr, level="WARNING")

    async def fetch_health() -> dict:
        async with InferenceClient.from_settings(settings, base_url=endpoint) as client:
            return await client.check_health()

    try:
        health = asyncio.run(fetch_health())
    except CallFailure as e:
        console.print(f"[red]✗ Inference service unreachable: {escape(e.message)}[/red]")
        raise typer.Exit(code=1)

    console.print(JSON(json.dumps(health)))
    if health.get("status") != "healthy":
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
