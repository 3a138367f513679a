"""stream-llm CLI.

Usage:
    stream-llm serve                      # Demo server on 127.0.0.1:8000
    stream-llm serve --port 9000          # Custom port
    stream-llm serve --tick 0.5           # Faster demo events
    stream-llm listen <url>               # Print events from an endpoint
"""

from __future__ import annotations

import asyncio
import logging

import click

from .client import ClientConfig, EventSourceClient

LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default="info",
    envvar="STREAM_LLM_LOG_LEVEL",
    help="Logging verbosity",
)
@click.pass_context
def main(ctx: click.Context, log_level: str) -> None:
    """stream-llm - Server-Sent Events for ASGI applications."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@main.command()
@click.option("--host", default="127.0.0.1", envvar="STREAM_LLM_HOST", help="Host to bind to")
@click.option("--port", default=8000, envvar="STREAM_LLM_PORT", help="Port to bind to")
@click.option(
    "--tick", default=1.0, type=click.FloatRange(min=0), help="Seconds between demo events"
)
@click.option(
    "--keep-alive",
    default=10.0,
    type=click.FloatRange(min=0),
    help="Heartbeat interval in seconds (0 disables)",
)
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
def serve(
    ctx: click.Context,
    host: str,
    port: int,
    tick: float,
    keep_alive: float,
    reload: bool,
) -> None:
    """Run the demo server."""
    import uvicorn

    from .demo import create_app

    click.echo(f"Starting stream-llm demo on http://{host}:{port}", err=True)
    click.echo("  Routes: /countdown, /iterate, /batch, /completion, /ticker", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    if reload:
        # Reload needs an import string; the factory uses default settings
        uvicorn.run(
            "stream_llm.demo:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_level=ctx.obj["log_level"],
        )
        return

    app = create_app(tick=tick, keep_alive=keep_alive or None)
    uvicorn.run(app, host=host, port=port, log_level=ctx.obj["log_level"])


@main.command()
@click.argument("url")
@click.option("--last-event-id", default="", help="Resume after this event id")
@click.option("--no-reconnect", is_flag=True, help="Exit when the stream ends")
def listen(url: str, last_event_id: str, no_reconnect: bool) -> None:
    """Print events from an event-stream endpoint."""

    async def run() -> None:
        config = ClientConfig(reconnect=not no_reconnect)
        async with EventSourceClient(url, config, last_event_id=last_event_id) as source:
            async for event in source:
                prefix = f"[{event.id}] " if event.id else ""
                click.echo(f"{prefix}{event.event}: {event.data}")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("Stopped", err=True)


if __name__ == "__main__":
    main()
