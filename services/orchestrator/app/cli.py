"""Command-line entry point for batch generation (``storybook-batch``)."""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer

from storybook_observability import setup_logging, start_metrics_server
from storybook_schemas import AgeBand, BatchConfig, BatchProgress, BatchStatus, Voice

from .batch import LocalProgressStore
from .config import PipelineSettings
from .flows import batch_audio_flow, book_batch_flow, regenerate_images_flow, retry_failed_flow

SERVICE_NAME = "batch"

app = typer.Typer(
    name="storybook-batch",
    no_args_is_help=True,
    help="Generate storybooks and narration in resumable batches.",
)


def _prepare() -> PipelineSettings:
    setup_logging(SERVICE_NAME)
    settings = PipelineSettings.from_env()
    if settings.metrics_port:
        start_metrics_server(settings.metrics_port)
    return settings


def _echo_summary(progress: BatchProgress) -> None:
    typer.echo(f"Batch id: {progress.batch_id}")
    typer.echo(f"Status: {progress.status.value}")
    typer.echo(f"Completed: {progress.completed_books}")
    typer.echo(f"Skipped: {progress.skipped_books}")
    typer.echo(f"Failed: {progress.failed_books}")
    typer.echo(f"Next index: {progress.current_index}/{progress.total_books}")
    if progress.failed_books:
        typer.echo("Failures are kept in the progress file; run `storybook-batch retry-failed`.")


@app.command("generate")
def generate_command(
    count: Annotated[int, typer.Option("--count", "-c", min=0, help="Number of books to generate.")] = 10,
    start_index: Annotated[int, typer.Option("--start-index", "-s", min=0, help="Starting index.")] = 0,
    age_band: Annotated[AgeBand, typer.Option("--age-band", "-a", help="Age band.")] = AgeBand.EARLY_READER,
    voice: Annotated[str, typer.Option("--voice", "-v", help="Narration voice.")] = Voice.KORE.value,
    text_concurrency: Annotated[int, typer.Option("--text-concurrency", min=1)] = 3,
    image_concurrency: Annotated[int, typer.Option("--image-concurrency", min=1)] = 2,
    audio_concurrency: Annotated[int, typer.Option("--audio-concurrency", min=1)] = 2,
    audio: Annotated[bool, typer.Option("--audio/--no-audio", help="Narrate each book.")] = True,
    batch_id: Annotated[Optional[str], typer.Option("--batch-id", help="Batch to start or resume.")] = None,
    resume: Annotated[bool, typer.Option("--resume", "-r", help="Resume the latest unfinished book batch, or --batch-id.")] = False,
) -> None:
    """Generate new books with text, illustrations and narration."""

    _prepare()
    config = BatchConfig(
        count=count,
        start_index=start_index,
        age_band=age_band,
        voice_name=Voice.coerce(voice).value,
        text_concurrency=text_concurrency,
        image_concurrency=image_concurrency,
        audio_concurrency=audio_concurrency,
        generate_audio=audio,
    )
    progress = asyncio.run(book_batch_flow(config=config, batch_id=batch_id, resume=resume))
    _echo_summary(progress)
    if progress.failed_books:
        raise typer.Exit(code=1)


@app.command("audio")
def audio_command(
    book_ids: Annotated[list[str], typer.Argument(help="Books to narrate.")],
    voice: Annotated[str, typer.Option("--voice", "-v")] = Voice.KORE.value,
    concurrency: Annotated[int, typer.Option("--concurrency", min=1, max=10)] = 2,
    force: Annotated[bool, typer.Option("--force", help="Ignore cached narration.")] = False,
) -> None:
    """Regenerate narration for existing books, skipping ones that are current."""

    _prepare()
    result = asyncio.run(
        batch_audio_flow(book_ids=book_ids, voice_name=voice, max_concurrency=concurrency, force=force)
    )
    typer.echo(f"Succeeded: {', '.join(result.succeeded) or '-'}")
    typer.echo(f"Skipped: {', '.join(result.skipped) or '-'}")
    typer.echo(f"Failed: {', '.join(result.failed) or '-'}")
    if result.failed:
        raise typer.Exit(code=1)


@app.command("images")
def images_command(
    book_id: Annotated[str, typer.Argument(help="Book to re-illustrate.")],
    pages: Annotated[
        Optional[list[int]],
        typer.Option("--page", "-p", help="Page to redo; repeatable. Defaults to failed pages."),
    ] = None,
) -> None:
    """Re-illustrate failed or missing pages and a missing cover of an existing book."""

    _prepare()
    result = asyncio.run(regenerate_images_flow(book_id=book_id, pages=pages or None))
    typer.echo(f"Images generated: {result.images_generated or 0}")
    typer.echo(f"Failed pages: {', '.join(str(number) for number in result.failed_pages) or '-'}")
    if not result.success:
        typer.echo(f"Error: {result.error}")
        raise typer.Exit(code=1)


@app.command("retry-failed")
def retry_failed_command(
    batch_id: Annotated[Optional[str], typer.Option("--batch-id", help="Defaults to the last batch.")] = None,
) -> None:
    """Replay only the failed units of a previous batch."""

    _prepare()
    progress = asyncio.run(retry_failed_flow(batch_id=batch_id))
    _echo_summary(progress)
    if progress.status == BatchStatus.FAILED or progress.failed_books:
        raise typer.Exit(code=1)


@app.command("progress")
def progress_command(
    batch_id: Annotated[Optional[str], typer.Option("--batch-id", help="Defaults to the latest checkpoint.")] = None,
) -> None:
    """Show a local batch checkpoint."""

    settings = PipelineSettings.from_env()
    progress = asyncio.run(LocalProgressStore(settings.batch_progress_dir).load(batch_id))
    if progress is None:
        typer.echo("No batch in progress.")
        return
    _echo_summary(progress)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
