import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from pydantic import BaseModel, TypeAdapter, ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown

from mirror_lens.config import Settings
from mirror_lens.models import QuizResponse

load_dotenv()
app = typer.Typer(help="Communication profile synthesis from behavioural records.")
console = Console()


def _service():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    from mirror_lens.llm.openai_service import OpenAITextService
    from mirror_lens.service import ProfileService
    from mirror_lens.store.sqlite import SQLiteRecordStore

    llm = OpenAITextService(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        timeout=settings.llm_timeout_seconds,
    )
    return ProfileService(SQLiteRecordStore(settings.db_path), llm, settings)


def _to_jsonable(result):
    if isinstance(result, BaseModel):
        return result.model_dump()
    if isinstance(result, list):
        return [_to_jsonable(item) for item in result]
    return result


def _emit(result, output: Optional[Path], markdown: Optional[str] = None) -> None:
    text = markdown if markdown is not None else json.dumps(_to_jsonable(result), indent=2, ensure_ascii=False)
    if output:
        output.write_text(text)
        console.print(f"[bold green]✓[/] Saved to [cyan]{output}[/]")
    elif markdown is not None:
        console.print(Markdown(markdown))
    else:
        console.print_json(text)


@app.command()
def profile(
    user_id: str = typer.Argument(help="User identifier"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw snapshot as JSON"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save report to file instead of printing"),
):
    """Generate a full communication profile snapshot."""
    service = _service()
    with console.status("[bold green]Synthesizing profile..."):
        snapshot = asyncio.run(service.generate_profile_snapshot(user_id))
    from mirror_lens.formatter import format_profile_report
    _emit(snapshot, output, None if as_json else format_profile_report(snapshot))


@app.command()
def weekly(
    user_id: str = typer.Argument(help="User identifier"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save report to file instead of printing"),
):
    """Summarize the last seven days of reflections."""
    service = _service()
    with console.status("[bold green]Analyzing this week's reflections..."):
        result = asyncio.run(service.generate_weekly_insights(user_id))
    from mirror_lens.formatter import format_weekly_report
    _emit(result, output, None if as_json else format_weekly_report(result))


@app.command()
def patterns(
    user_id: str = typer.Argument(help="User identifier"),
    limit: int = typer.Option(50, "--limit", "-l", help="Number of recent reflections to analyze"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
):
    """Detect recurring communication patterns."""
    service = _service()
    _emit(asyncio.run(service.detect_patterns(user_id, limit)), output)


@app.command()
def moments(
    user_id: str = typer.Argument(help="User identifier"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of recent reflections to analyze"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
):
    """Detect mirror moments (communication breakthroughs)."""
    service = _service()
    _emit(asyncio.run(service.detect_mirror_moments(user_id, limit)), output)


@app.command()
def tips(
    user_id: str = typer.Argument(help="User identifier"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
):
    """Generate communication tips from detected patterns."""
    service = _service()
    _emit(asyncio.run(service.generate_tips(user_id)), output)


@app.command()
def quiz(
    user_id: str = typer.Argument(help="User identifier"),
    contact_id: str = typer.Argument(help="Contact the quiz is about"),
    responses: Path = typer.Option(..., "--responses", "-r", help="JSON file with the answered quiz cards"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
):
    """Analyze relationship quiz responses into slider recommendations."""
    try:
        answered = TypeAdapter(list[QuizResponse]).validate_json(responses.read_text())
    except (OSError, ValidationError) as e:
        console.print(f"[bold red]Error:[/] could not read quiz responses from {responses}: {e}")
        raise typer.Exit(1)
    service = _service()
    _emit(asyncio.run(service.analyze_quiz_responses(user_id, contact_id, answered)), output)


@app.command()
def like(
    user_id: str = typer.Argument(help="User identifier"),
    insight_id: str = typer.Argument(help="Insight to mark"),
    undo: bool = typer.Option(False, "--undo", help="Remove the like instead"),
):
    """Like (or unlike) an insight so regenerated feeds keep the mark."""
    from mirror_lens.store.base import StoreError

    service = _service()
    try:
        if undo:
            asyncio.run(service.unlike_insight(user_id, insight_id))
        else:
            asyncio.run(service.like_insight(user_id, insight_id))
    except StoreError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1)
    if undo:
        console.print(f"[dim]Removed like on {insight_id}[/]")
    else:
        console.print(f"[bold green]♥[/] Liked {insight_id}")


@app.command()
def stats(
    user_id: str = typer.Argument(help="User identifier"),
):
    """Show activity counts for a user."""
    service = _service()
    _emit(asyncio.run(service.profile_stats(user_id)), None)


if __name__ == "__main__":
    app()
