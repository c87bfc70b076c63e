"""WhisperKey CLI - inspect the sample log and run adaptation by hand.

Commands:
    whisperkey status       - Show sample store status
    whisperkey samples      - List most recent samples
    whisperkey add          - Store a sample from a raw PCM file
    whisperkey adapt        - Run one adaptation job now
    whisperkey vocab        - Show the learned vocabulary
    whisperkey config-show  - Show configuration
"""

from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Optional
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich import box

from .config import get_config, set_config, Config
from .errors import WhisperKeyError


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True, show_path=False)]
)
logger = logging.getLogger("whisperkey")

app = typer.Typer(
    name="whisperkey",
    help="On-device voice input personalization",
    no_args_is_help=True,
)

console = Console()


def init_app(data_dir: Optional[Path] = None) -> Config:
    """Initialize application configuration."""
    config = get_config()

    if data_dir:
        config = Config(data_dir=data_dir)
        set_config(config)

    config.data_dir.mkdir(parents=True, exist_ok=True)
    return config


@app.command()
def status(
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Show sample store status."""
    config = init_app(data_dir)

    from .learning import get_sample_store

    stats = get_sample_store().get_stats()

    console.print()
    console.print("[bold cyan]═══ WhisperKey Status ═══[/bold cyan]")
    console.print()

    table = Table(show_header=False, box=box.SIMPLE)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Samples", str(stats["total"]))
    table.add_row("Latest id", str(stats["latest_id"]) if stats["latest_id"] else "-")
    table.add_row("Waveform bytes", f"{stats['total_bytes']:,}")
    table.add_row("Batch size", str(config.batch_size))
    table.add_row("Database", stats["db_path"])

    console.print(table)
    console.print()


@app.command()
def samples(
    limit: int = typer.Option(8, "--limit", "-n", help="Number of samples to show"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """List the most recent samples, newest first."""
    init_app(data_dir)

    from .learning import get_sample_store, waveform_rms

    batch = get_sample_store().sample_batch(limit)

    console.print()
    if not batch:
        console.print("[dim]No samples stored yet[/dim]")
        console.print()
        return

    table = Table(box=box.SIMPLE)
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_column("RMS", justify="right")
    table.add_column("Transcript")

    for sample in batch:
        table.add_row(
            str(sample.id),
            f"{sample.size:,}",
            f"{waveform_rms(sample.waveform):.3f}",
            sample.transcript or "[dim](empty)[/dim]",
        )

    console.print(table)
    console.print()


@app.command()
def add(
    wave_file: Path = typer.Argument(..., help="Raw 16-bit PCM file", exists=True, dir_okay=False),
    transcript: str = typer.Argument(..., help="Transcript for the waveform"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Store one sample and wait for its id."""
    config = init_app(data_dir)

    from .learning import get_sample_store

    store = get_sample_store()
    future = store.insert(wave_file.read_bytes(), transcript)

    try:
        sample_id = future.result(timeout=config.flush_timeout)
    except WhisperKeyError as e:
        console.print(f"[red]Insert failed: {e}[/red]")
        raise typer.Exit(1)
    except FutureTimeoutError:
        console.print(f"[red]Insert not confirmed within {config.flush_timeout}s[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Stored sample {sample_id}[/green]")


@app.command()
def adapt(
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Samples per batch"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Run one adaptation job now with the vocabulary engine."""
    init_app(data_dir)

    from .learning import AdaptationScheduler, VocabularyAdaptationEngine

    scheduler = AdaptationScheduler(VocabularyAdaptationEngine(), batch_size=batch_size)
    try:
        job = scheduler.run_now()
    finally:
        scheduler.shutdown()

    console.print()
    table = Table(show_header=False, box=box.SIMPLE)
    table.add_column("", style="cyan")
    table.add_column("")

    table.add_row("Job", job.id)
    table.add_row("Status", job.status)
    table.add_row("Samples", ", ".join(str(i) for i in job.batch_ids) or "-")
    if job.error:
        table.add_row("Error", f"[red]{job.error}[/red]")

    console.print(table)
    console.print()

    if job.error:
        raise typer.Exit(1)


@app.command()
def vocab(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of words to show"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Show the most frequent learned words."""
    init_app(data_dir)

    from .learning import VocabularyAdaptationEngine

    words = VocabularyAdaptationEngine().top_words(limit)

    console.print()
    if not words:
        console.print("[dim]Vocabulary is empty - run: whisperkey adapt[/dim]")
        console.print()
        return

    table = Table(box=box.SIMPLE)
    table.add_column("Word", style="cyan")
    table.add_column("Count", justify="right")
    for word, count in words:
        table.add_row(word, str(count))

    console.print(table)
    console.print()


@app.command("config-show")
def config_show(
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Show current configuration."""
    config = init_app(data_dir)

    console.print()
    console.print("[bold]Configuration[/bold]")
    console.print(f"  Data dir: {config.data_dir}")
    console.print(f"  Database: {config.db_path}")
    console.print(f"  Vocabulary: {config.vocabulary_path}")
    console.print(f"  Batch size: {config.batch_size}")
    console.print(f"  Job workers: {config.job_workers}")
    console.print(f"  Flush timeout: {config.flush_timeout}s")
    console.print(f"  Silence RMS: {config.silence_rms}")
    console.print()


def main():
    app()


if __name__ == "__main__":
    main()
