"""CLI entry point for agentdeck."""

from __future__ import annotations

import asyncio
import logging
import threading

import typer
from rich.console import Console
from rich.markup import escape

from agentdeck import __version__
from agentdeck.commands import CommandDispatcher, describe_event
from agentdeck.config import AgentDeckConfig
from agentdeck.deck import AgentDeck
from agentdeck.display import HeadlessDisplay, Surface
from agentdeck.session.wire import Wire, WireEvent, drain

app = typer.Typer(
    name="agentdeck",
    help="Run several interactive agent CLIs side by side and switch between them.",
    no_args_is_help=True,
)

PROMPT = "agentdeck> "
# Time given to PTY readers to deliver output before the display is redrawn.
SETTLE_SECONDS = 0.2


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _print_events(console: Console, events: list[WireEvent]) -> None:
    for event in events:
        line = describe_event(event)
        if line:
            console.print(line)


def _read_line(loop: asyncio.AbstractEventLoop, prompt: str) -> asyncio.Future[str]:
    """Read one line on a daemon thread, so an interrupt never waits on it."""
    future: asyncio.Future[str] = loop.create_future()

    def settle(line: str | None, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line or "")

    def read() -> None:
        try:
            line = input(prompt)
        except Exception as e:
            result: tuple[str | None, Exception | None] = (None, e)
        else:
            result = (line, None)
        if not loop.is_closed():
            loop.call_soon_threadsafe(settle, *result)

    threading.Thread(target=read, name="agentdeck-input", daemon=True).start()
    return future


def _render(deck: AgentDeck, console: Console) -> None:
    display = deck.display
    if not isinstance(display, HeadlessDisplay):
        return

    def title_for(surface: Surface) -> str:
        session_id = deck.runtime.id_for_surface(surface)
        record = deck.registry.get(session_id) if session_id is not None else None
        return escape(record.name) if record else f"surface {surface.handle}"

    display.render(console, title_for=title_for)


async def _run_shell(config: AgentDeckConfig, create_first: bool) -> None:
    console = Console()
    wire = Wire()
    events = wire.subscribe()
    deck = AgentDeck.build(config, wire=wire)
    dispatcher = CommandDispatcher(deck, console)
    loop = asyncio.get_running_loop()

    console.print(f"agentdeck v{__version__}, type `help` for commands")
    if create_first:
        dispatcher.new()
        await asyncio.sleep(SETTLE_SECONDS)

    try:
        while True:
            _print_events(console, drain(events))
            _render(deck, console)
            try:
                line = await _read_line(loop, PROMPT)
            except EOFError:
                break
            _print_events(console, drain(events))
            if not dispatcher.execute(line):
                break
            await asyncio.sleep(SETTLE_SECONDS)
    finally:
        deck.shutdown()
        _print_events(console, drain(events))
        wire.close()


@app.command()
def shell(
    command: str | None = typer.Option(
        None,
        "--command",
        "-C",
        help="Command each session runs (default: from env/config).",
    ),
    new: bool = typer.Option(
        False, "--new", "-n", help="Start a session before showing the prompt."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Interactive shell for creating, switching and talking to agent sessions."""
    setup_logging(verbose)

    config = AgentDeckConfig.load(config_file)
    if command:
        config.command = command

    try:
        asyncio.run(_run_shell(config, create_first=new))
    except KeyboardInterrupt:
        typer.echo("")


@app.command()
def version() -> None:
    """Show the agentdeck version."""
    typer.echo(f"agentdeck v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
