"""Demo application.

Routes:
- /countdown - fetch style, pushes a countdown then closes
- /iterate - raw ASGI, streams a list and an async generator
- /batch - fetch style, several events in one write
- /completion - fetch style, a simulated LLM token stream via Session.stream
- /ticker - raw ASGI, subscribes to a channel fed by a background task
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from .buffer import EventBuffer
from .channel import Channel, create_channel
from .endpoints import SessionEndpoint, create_response
from .session import Session

logger = logging.getLogger(__name__)

FRUITS = ["Apple", "Banana", "Grapes", "Strawberry"]


async def fake_completion(prompt: str, delay: float) -> AsyncIterator[dict]:
    """Yield chunks shaped like an OpenAI streaming completion."""
    for word in f"You said: {prompt}".split(" "):
        await asyncio.sleep(delay)
        yield {"choices": [{"delta": {"content": word + " "}}]}


def create_app(tick: float = 1.0, keep_alive: float | None = 10.0) -> Starlette:
    """Create the demo application.

    Args:
        tick: Base delay in seconds between demo events
        keep_alive: Heartbeat interval for every session
    """
    ticker: Channel = create_channel({"symbol": "DEMO"})

    async def countdown(request: Request) -> Response:
        async def run(session: Session) -> None:
            for i in range(10, -1, -1):
                session.push(
                    {"count": i, "message": "Liftoff!" if i == 0 else f"{i}..."}, "countdown"
                )
                await asyncio.sleep(tick)
            session.push({"done": True}, "complete")
            session.close()

        return create_response(request, run, keep_alive=keep_alive)

    async def iterate(session: Session) -> None:
        await session.iterate(FRUITS, event="fruit")

        async def numbers() -> AsyncIterator[dict]:
            for i in range(1, 6):
                await asyncio.sleep(tick / 2)
                yield {"number": i, "squared": i * i}

        await session.iterate(numbers(), event="number", event_id_prefix="number")
        session.push({"done": True}, "complete")
        session.close()

    async def batch(request: Request) -> Response:
        def compose(buffer: EventBuffer) -> None:
            buffer.push({"type": "info", "message": "Starting batch"}, "log")
            for value in (100, 200, 300):
                buffer.push({"type": "data", "value": value}, "data")
            buffer.push({"type": "info", "message": "Batch complete"}, "log")

        async def run(session: Session) -> None:
            await session.batch(compose)
            session.push({"done": True}, "complete")
            session.close()

        return create_response(request, run, keep_alive=keep_alive)

    async def completion(request: Request) -> Response:
        prompt = request.query_params.get("prompt", "Hello")

        async def run(session: Session) -> None:
            session.push({"status": "connecting"}, "status")
            parts: list[str] = []

            def extract(chunk: dict) -> dict:
                content = chunk["choices"][0]["delta"].get("content") or ""
                parts.append(content)
                return {"chunk": content, "fullText": "".join(parts)}

            await session.stream(
                fake_completion(prompt, tick / 10),
                event="llm-chunk",
                event_id_prefix="chunk",
                transform=extract,
            )
            session.push({"done": True, "fullText": "".join(parts)}, "llm-done")
            session.close()

        return create_response(request, run, keep_alive=keep_alive)

    def subscribe(session: Session) -> None:
        ticker.register(session)
        session.push({"status": "subscribed"}, "status")

    async def publish_ticker() -> None:
        while True:
            await asyncio.sleep(tick * 2)
            ticker.broadcast(
                {
                    "symbol": ticker.state["symbol"],
                    "price": round(random.uniform(50, 150), 2),
                    "change": round(random.uniform(-5, 5), 2),
                    "timestamp": int(time.time() * 1000),
                },
                "ticker-update",
            )

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        task = asyncio.create_task(publish_ticker())
        logger.info("Ticker started")
        try:
            yield
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    routes = [
        Route("/countdown", countdown, methods=["GET"]),
        Route("/iterate", SessionEndpoint(iterate, keep_alive=keep_alive)),
        Route("/batch", batch, methods=["GET"]),
        Route("/completion", completion, methods=["GET"]),
        Route("/ticker", SessionEndpoint(subscribe, keep_alive=keep_alive)),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.ticker = ticker
    return app
