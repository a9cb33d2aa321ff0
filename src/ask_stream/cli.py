"""CLI interface for streaming answers from an ask endpoint."""

import asyncio
from collections.abc import Sequence

import typer

from .accumulator import PresentedEntry, RoundState
from .client import ChatClient
from .config import AppSettings, get_settings
from .models import Annotation, AnnotationKind, GenerateMode, ResultItem
from .observability import setup_structured_logging
from .renderer import BaseRenderer, insufficient_results_message
from .session import SessionState

app = typer.Typer(help="Stream answers to natural-language queries from an ask endpoint")

_ANNOTATION_PREFIX = {
    AnnotationKind.REMEMBER: "Remembering",
    AnnotationKind.SOURCES: "Sources",
    AnnotationKind.SITE_IRRELEVANT: "Note",
    AnnotationKind.ASK_USER: "Question",
    AnnotationKind.ITEM_DETAILS: "Details",
    AnnotationKind.INTERMEDIATE: "...",
    AnnotationKind.SUMMARY: "Summary",
}


def format_item(item: ResultItem, rank: int | None = None) -> str:
    """One-line (plus description) text rendering of a result."""
    head = f"{rank}. " if rank is not None else "- "
    line = f"{head}{item.display_name} [{item.score:g}]"
    if item.url and item.url != item.display_name:
        line += f"\n   {item.url}"
    if item.description:
        line += f"\n   {item.description}"
    return line


class ConsoleRenderer(BaseRenderer):
    """Prints annotations as they arrive and the final ordered results."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.final_state: SessionState | None = None
        self.results_shown = 0

    def on_annotation(self, annotation: Annotation) -> None:
        typer.echo(f"{_ANNOTATION_PREFIX[annotation.kind]}: {annotation.text}")

    def on_results_appended(self, items: Sequence[ResultItem]) -> None:
        if self.verbose:
            for item in items:
                typer.echo(f"+ {item.display_name} [{item.score:g}]")

    def on_results_reordered(self, presented: Sequence[PresentedEntry]) -> None:
        pass

    def on_terminal_state(self, state: SessionState, round_state: RoundState) -> None:
        self.final_state = state
        if state is SessionState.FAILED:
            typer.echo("Connection failed: could not get an answer from the server.", err=True)
            return

        if round_state.summary:
            typer.echo(f"\nSummary: {round_state.summary.text}")
        message = insufficient_results_message(round_state, had_earlier_results=self.results_shown > 0)
        if message:
            typer.echo(message)
            return
        typer.echo("")
        for rank, item in enumerate(round_state.results, start=1):
            typer.echo(format_item(item, rank))
        self.results_shown += len(round_state.results)


@app.command()
def ask(
    query: str = typer.Argument(..., help="Question to ask"),
    site: str = typer.Option(None, "--site", "-s", help="Restrict the query to a site"),
    mode: GenerateMode = typer.Option(None, "--mode", "-m", help="Answer mode: list, summarize or generate"),
    endpoint: str = typer.Option(None, "--endpoint", "-e", help="Streaming endpoint URL"),
    max_retries: int = typer.Option(None, "--max-retries", help="Reconnect attempts before giving up"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print results as they arrive"),
) -> None:
    """Stream the answer to a query and print the ranked results."""
    settings = get_settings()
    settings = _with_overrides(settings, endpoint=endpoint, max_retries=max_retries)
    setup_structured_logging(settings.logging.level, json_output=settings.logging.json_output)

    renderer = ConsoleRenderer(verbose=verbose)

    async def _ask() -> SessionState:
        async with ChatClient(settings, renderer=renderer) as client:
            session = client.ask(query, site=site, generate_mode=mode)
            if session is None:
                raise typer.BadParameter("Query must not be blank", param_hint="QUERY")
            return await session.wait()

    state = asyncio.run(_ask())
    if state is SessionState.FAILED:
        raise typer.Exit(code=1)


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = get_settings()
    print(f"Endpoint: {settings.client.api_endpoint}")
    print(f"Site: {settings.client.site or '(all)'}")
    print(f"Generate Mode: {settings.client.generate_mode}")
    print(f"Context URL: {settings.client.context_url or '(none)'}")
    print(f"Max Retries: {settings.connection.max_retries}")
    print(f"Backoff: {settings.connection.initial_delay:g}s base, {settings.connection.max_delay:g}s cap")
    print(f"Timeout: {settings.connection.timeout:g}s")
    print(f"Log Level: {settings.logging.level}")


def _with_overrides(settings: AppSettings, endpoint: str | None, max_retries: int | None) -> AppSettings:
    client = settings.client
    connection = settings.connection
    if endpoint:
        client = client.model_copy(update={"api_endpoint": endpoint})
    if max_retries is not None:
        connection = connection.model_copy(update={"max_retries": max_retries})
    return settings.model_copy(update={"client": client, "connection": connection})


def main() -> None:
    app()


if __name__ == "__main__":
    app()
