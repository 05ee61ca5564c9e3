"""turnbridge command line."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
import uvicorn
from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console

from turnbridge.api import create_app
from turnbridge.app import BridgeRuntime, build_runtime
from turnbridge.config import Settings, load_settings
from turnbridge.errors import BridgeError
from turnbridge.logging_utils import configure_logging

EXIT_COMMANDS = frozenset({"/quit", "/exit", "quit", "exit"})

app = typer.Typer(name="turnbridge", help="HTTP bridge for a streaming conversational engine", add_completion=False)
console = Console()

T = TypeVar("T")


def _run(settings: Settings, action: Callable[[BridgeRuntime], Awaitable[T]]) -> T:
    async def main() -> T:
        async with build_runtime(settings) as runtime:
            return await action(runtime)

    try:
        return asyncio.run(main())
    except BridgeError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
) -> None:
    """Serve the HTTP API."""
    settings = load_settings()
    configure_logging(level=settings.log_level)
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def ask(message: str = typer.Argument(..., help="Message to send")) -> None:
    """Send one message on a fresh connection and print the reply."""
    settings = load_settings()
    configure_logging(level=settings.log_level)
    result = _run(settings, lambda runtime: runtime.ask(message))
    typer.echo(result.text or "No response received")


@app.command()
def chat() -> None:
    """Hold an interactive multi-turn session with the engine."""
    settings = load_settings()
    configure_logging(profile="chat", level=settings.log_level)
    _run(settings, _chat_loop)


async def _chat_loop(runtime: BridgeRuntime) -> None:
    session = await runtime.sessions.open()
    console.print(f"[dim]session {session.session_id}[/dim]")
    if session.greeting:
        console.print(f"[bold yellow]Engine:[/bold yellow] {session.greeting}")

    prompt: PromptSession[str] = PromptSession()
    while session.session_id in runtime.sessions:
        try:
            with patch_stdout():
                text = (await prompt.prompt_async("> ")).strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not text:
            continue
        if text in EXIT_COMMANDS:
            break
        try:
            result = await runtime.sessions.send(session.session_id, text)
        except BridgeError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            continue
        console.print(f"[bold yellow]Engine:[/bold yellow] {result.text or '(no response)'}")
        if result.timed_out:
            console.print(f"[dim]turn ended by {result.reason}[/dim]")
    await runtime.sessions.close(session.session_id)
    console.print("Goodbye!")


@app.command()
def job(message: str = typer.Argument(..., help="Message to hand off")) -> None:
    """Start a fire-and-forget job and report it until it finishes."""
    settings = load_settings()
    configure_logging(level=settings.log_level)

    async def start(runtime: BridgeRuntime) -> None:
        started = await runtime.jobs.start(message)
        typer.echo(f"job {started.job_id} {started.status}")
        finished = await runtime.jobs.wait(started.job_id)
        if finished is None:
            return
        typer.echo(f"job {finished.job_id} {finished.status}")
        typer.echo(finished.response if finished.response is not None else finished.error or "")

    _run(settings, start)


if __name__ == "__main__":
    app()
