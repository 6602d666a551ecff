"""CLI entry point for the rescue operator console."""

from __future__ import annotations

import asyncio
import io
import logging
import os
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, TextIO

import typer

from rescue_console.core.orchestrator import ConsoleOrchestrator
from rescue_console.metrics.logging import DecisionLogWriter
from rescue_console.modules.advisory import (
    AdvisoryClient,
    AdvisoryProxyServer,
    AdvisoryTriggerController,
    ChatForwarder,
)
from rescue_console.modules.channel import StateChannelClient
from rescue_console.modules.console import (
    OperatorConsole,
    format_action_error,
    format_status_line,
)
from rescue_console.modules.runtime import WebSocketRuntimeBridge
from rescue_console.modules.simulator import DriftSimulator
from rescue_console.modules.stubs import RecordingRuntime
from rescue_console.schemas.advisory import TriggerDecision
from rescue_console.schemas.snapshot import StatusSnapshot
from rescue_console.utils.config import ConsoleSettings, load_env_file
from rescue_console.utils.logging import create_session_logger

app = typer.Typer(
    name="rescue-console",
    help="Operator console for a teleoperated search-and-rescue robot",
    add_completion=False,
)

HELP_TEXT = (
    "Keys: w/a/s/d move, 1/2 drop water/food, f/n toggle flashlight/nightvision\n"
    "      'up <key>' releases a movement key, 'drop <item>', 'toggle <tool>', 'quit'"
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def handle_command(console: OperatorConsole, line: str) -> bool:
    """Apply one operator input line. Returns False when the operator quits."""
    parts = line.strip().split()
    if not parts:
        return True
    head = parts[0].lower()

    if head in ("quit", "exit", "q"):
        return False
    if head == "help":
        typer.echo(HELP_TEXT)
    elif head == "up" and len(parts) == 2:
        console.key_up(parts[1])
    elif head in ("drop", "toggle") and len(parts) == 2:
        if not await console.hud_action(head, parts[1].lower()):
            typer.echo(f"Ignored: {line.strip()}")
    elif len(head) == 1:
        if not await console.key_down(head):
            typer.echo(f"Unmapped key: {head}")
    else:
        typer.echo(f"Unknown command: {line.strip()}")

    error = console.drain_error()
    if error is not None:
        typer.echo(format_action_error(error), err=True)
    return True


def _iter_lines(stream: TextIO) -> Iterator[str]:
    """Yield lines from ``stream``, reading the raw descriptor when it has one.

    Raw reads keep the interpreter's buffered stdin lock free, so a
    blocked reader cannot stall shutdown.
    """
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, io.UnsupportedOperation):
        yield from iter(stream.readline, "")
        return

    pending = b""
    while True:
        chunk = os.read(fd, 4096)
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line.decode(errors="replace") + "\n"
    if pending:
        yield pending.decode(errors="replace")


def start_line_reader(
    loop: asyncio.AbstractEventLoop,
    queue: asyncio.Queue[str | None],
    stream: TextIO | None = None,
) -> threading.Thread:
    """Feed lines from ``stream`` (stdin by default) into ``queue``.

    The reader is a daemon thread, so a read still blocked when the console
    quits does not hold the process open. ``None`` marks end of input.
    """
    source = stream if stream is not None else sys.stdin

    def pump() -> None:
        try:
            for line in _iter_lines(source):
                loop.call_soon_threadsafe(queue.put_nowait, line)
            loop.call_soon_threadsafe(queue.put_nowait, None)
        except RuntimeError:
            # Event loop already closed
            return

    thread = threading.Thread(target=pump, name="operator-input", daemon=True)
    thread.start()
    return thread


async def _run_console(
    settings: ConsoleSettings,
    drift: bool,
    seed: Optional[int],
    decision_log: DecisionLogWriter,
    quiet: bool,
) -> None:
    channel = StateChannelClient()
    controller = AdvisoryTriggerController(
        service=AdvisoryClient.from_settings(settings),
        decision_log=decision_log,
    )

    def show(snapshot: StatusSnapshot, decision: TriggerDecision) -> None:
        if quiet:
            return
        marker = f" <{decision.reason.value}>" if decision.trigger else ""
        typer.echo(format_status_line(
            snapshot,
            channel.status().value,
            controller.indicator(),
            controller.displayed_advice,
        ) + marker)

    orchestrator = ConsoleOrchestrator(
        channel=channel,
        controller=controller,
        simulator=DriftSimulator(seed=seed) if drift else None,
        on_snapshot=show,
    )

    if settings.runtime_url:
        runtime = WebSocketRuntimeBridge()
        runtime.connect(settings.runtime_url)
    else:
        runtime = RecordingRuntime()
    console = OperatorConsole(
        runtime,
        channel,
        snapshot_source=lambda: orchestrator.snapshot,
        on_tools_changed=orchestrator.ingest_tools,
    )

    orchestrator.start(settings.telemetry_url)
    lines: asyncio.Queue[str | None] = asyncio.Queue()
    start_line_reader(asyncio.get_running_loop(), lines)
    try:
        while True:
            line = await lines.get()
            if line is None or not await handle_command(console, line):
                break
    finally:
        await orchestrator.stop()
        if isinstance(runtime, WebSocketRuntimeBridge):
            await runtime.close()


@app.command()
def run(
    telemetry_ws: Optional[str] = typer.Option(
        None,
        "--telemetry-ws",
        help="Telemetry WebSocket URL (overrides TELEMETRY_WS_URL)",
    ),
    runtime_ws: Optional[str] = typer.Option(
        None,
        "--runtime-ws",
        help="Rendering runtime WebSocket URL (overrides RUNTIME_WS_URL)",
    ),
    advisory_url: Optional[str] = typer.Option(
        None,
        "--advisory-url",
        help="Advisory proxy URL (overrides ADVISORY_URL)",
    ),
    drift: bool = typer.Option(
        True,
        "--drift/--no-drift",
        help="Simulate onboard environment sensor drift",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        "-s",
        help="Random seed for the drift simulator",
    ),
    output_dir: Path = typer.Option(
        Path("runs"),
        "--output",
        "-o",
        help="Output directory for session and decision logs",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress per-snapshot status lines",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
    env_file: Path = typer.Option(
        Path(".env"),
        "--env-file",
        help="Dotenv file with credentials and endpoints (ignored if missing)",
    ),
) -> None:
    """Run the operator console.

    Connects to the telemetry channel, asks the advisory service for
    guidance as conditions change, and reads operator keys from stdin.

    Examples:

        # Through a local forwarding proxy
        rescue-console run --advisory-url http://localhost:3001/api/chat

        # Directly against the provider (needs DEEPSEEK_API_KEY)
        rescue-console run --telemetry-ws ws://robot:50001 --no-drift
    """
    setup_logging(verbose)

    load_env_file(env_file)
    try:
        settings = ConsoleSettings.from_env()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if telemetry_ws:
        settings.telemetry_url = telemetry_ws
    if runtime_ws:
        settings.runtime_url = runtime_ws
    if advisory_url:
        settings.advisory_url = advisory_url

    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = output_dir / run_id
    session_log = create_session_logger(session_id=run_id, runs_dir=output_dir)

    if not quiet:
        typer.echo("Rescue Operator Console")
        typer.echo(f"Run ID: {run_id}")
        typer.echo(f"Telemetry: {settings.telemetry_url}")
        typer.echo(f"Runtime: {settings.runtime_url or 'none (commands recorded locally)'}")
        typer.echo(f"Advisory: {settings.advisory_url or settings.provider_api_url}")
        typer.echo(HELP_TEXT)
        typer.echo("-" * 60)

    with DecisionLogWriter(run_dir / "decisions.jsonl") as decision_log:
        try:
            asyncio.run(_run_console(settings, drift, seed, decision_log, quiet))
        except KeyboardInterrupt:
            typer.echo("\nInterrupted")
        finally:
            session_log.close()

    if not quiet:
        typer.echo("-" * 60)
        typer.echo(f"Decisions logged: {decision_log.count} -> {decision_log.path}")


@app.command()
def proxy(
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        help="Port to listen on (overrides PROXY_PORT / PORT)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
    env_file: Path = typer.Option(
        Path(".env"),
        "--env-file",
        help="Dotenv file with credentials and endpoints (ignored if missing)",
    ),
) -> None:
    """Serve the advisory forwarding proxy."""
    setup_logging(verbose)
    logging.getLogger("rescue_console").setLevel(logging.INFO)

    load_env_file(env_file)
    try:
        settings = ConsoleSettings.from_env()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    server = AdvisoryProxyServer(
        ChatForwarder.from_settings(settings),
        port=port if port is not None else settings.proxy_port,
    )
    typer.echo(f"Advisory proxy on http://localhost:{server.port} (Ctrl+C to stop)")
    server.serve_forever()


@app.command()
def version() -> None:
    """Show version information."""
    from rescue_console import __version__
    typer.echo(f"rescue-console v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
