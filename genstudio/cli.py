"""CLI entry-point: model catalogue, one-off generations and upload housekeeping."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from genstudio.capabilities import MODEL_CAPABILITIES, models_for_feature
from genstudio.config import get_settings
from genstudio.container import build_container
from genstudio.errors import GenerationError
from genstudio.schemas.models import GenerationRequest, GenerationType

app = typer.Typer(help="Video and image generation across Kling, Veo, Imagen and Gemini")
console = Console()


@app.command()
def models(
    feature: Optional[GenerationType] = typer.Option(None, help="Only models serving this generation type"),
):
    """List known models and whether their provider is configured."""
    container = build_container(get_settings())
    configured = container.registry.configured()
    caps = models_for_feature(feature) if feature else list(MODEL_CAPABILITIES.values())

    table = Table(title="Models")
    table.add_column("Model")
    table.add_column("Provider")
    table.add_column("Durations")
    table.add_column("Features")
    table.add_column("Ready")
    for cap in caps:
        table.add_row(
            cap.name,
            cap.provider,
            ", ".join(f"{d}s" for d in cap.durations) or "-",
            ", ".join(f.value for f in cap.features),
            "[green]yes[/green]" if configured.get(cap.provider) else "[red]no[/red]",
        )
    console.print(table)


@app.command()
def generate(
    model_name: str = typer.Argument(..., help='Model, e.g. "Kling 2.6" or "Veo 3"'),
    prompt: str = typer.Argument(..., help="Text prompt"),
    generation_type: GenerationType = typer.Option(GenerationType.TEXT_TO_VIDEO, "--type", help="Generation type"),
    image: Optional[str] = typer.Option(None, help="Input image URL or uploads filename"),
    end_image: Optional[str] = typer.Option(None, help="End frame (Kling image-to-video)"),
    video: Optional[str] = typer.Option(None, help="Input video URL or uploads filename"),
    duration: Optional[str] = typer.Option(None, help='Duration, e.g. "5s"'),
    aspect_ratio: str = typer.Option("16:9", help="Aspect ratio"),
    resolution: str = typer.Option("720p", help="Resolution"),
    audio: bool = typer.Option(False, "--audio", help="Ask for generated audio where supported"),
    timeout: float = typer.Option(900, help="Seconds to wait for a terminal state"),
):
    """Submit one generation and wait for it to finish."""
    settings = get_settings()
    request = GenerationRequest(
        prompt=prompt,
        generation_type=generation_type,
        model_name=model_name,
        duration=duration,
        aspect_ratio=aspect_ratio,
        resolution=resolution,
        audio_enabled=audio,
        image_url=image,
        end_image_url=end_image,
        video_url=video,
    )

    async def run():
        container = build_container(settings)
        try:
            return await container.service.submit_and_wait(request, timeout=timeout)
        finally:
            await container.shutdown()

    try:
        with console.status(f"Generating with {model_name}..."):
            record = asyncio.run(run())
    except GenerationError as e:
        console.print(f"[red]Error ({e.code}): {e}[/red]")
        raise typer.Exit(1)

    if record.status.value == "completed":
        console.print(f"[green]Completed[/green] {record.id}: {record.result_url}")
    else:
        console.print(f"[red]Failed[/red] {record.id} ({record.error_code}): {record.error_message}")
        raise typer.Exit(1)


@app.command()
def status(
    generation_id: str = typer.Argument(..., help="Generation id (gen_...)"),
    refresh: bool = typer.Option(False, "--refresh", help="Poll the provider once before printing"),
):
    """Show a stored generation record."""
    settings = get_settings()

    async def run():
        container = build_container(settings)
        if refresh:
            return await container.poller.poll_once(generation_id)
        return container.tracker.require(generation_id)

    try:
        record = asyncio.run(run())
    except KeyError:
        console.print(f"[red]Generation not found: {generation_id}[/red]")
        raise typer.Exit(1)
    except GenerationError as e:
        console.print(f"[red]Error ({e.code}): {e}[/red]")
        raise typer.Exit(1)
    console.print_json(record.model_dump_json(exclude_none=True))


@app.command("clean-uploads")
def clean_uploads(
    dry_run: bool = typer.Option(False, "--dry-run", help="Only list what would be deleted"),
):
    """Delete files in the uploads directory that no generation record references.

    Merged workflow videos belong to no record and are removed as well.
    """
    container = build_container(get_settings())
    referenced: set[str] = set()
    for record in container.store.list():
        for ref in (
            record.video_url,
            record.image_url,
            record.thumbnail_url,
            record.input_image_url,
            record.input_video_url,
        ):
            name = container.storage.filename_for(ref or "")
            if name:
                referenced.add(name)

    orphans = [p for p in container.storage.list_files() if p.name not in referenced]
    freed = 0
    for path in orphans:
        freed += path.stat().st_size
        if dry_run:
            console.print(f"would delete {path.name}")
        else:
            container.storage.delete(path.name)
    verb = "Would free" if dry_run else "Freed"
    console.print(f"{len(orphans)} unreferenced files. {verb} {freed / (1024 * 1024):.1f} MB.")


if __name__ == "__main__":
    app()
