"""Accessors for the objects create_app() puts on app.state."""

import asyncio
import json
from typing import Any

from fastapi import Request
from fastapi.responses import StreamingResponse

from taleweave.config import get_config
from taleweave.llm import LLM, HttpLLM
from taleweave.sessions import SessionManager
from taleweave.storage import Storage


def manager(request: Request) -> SessionManager:
    return request.app.state.manager


def store(request: Request) -> Storage:
    return request.app.state.manager.store


def config(request: Request) -> dict[str, Any]:
    return get_config(request.app.state.data_dir)


def llm(request: Request, cfg: dict[str, Any]) -> LLM:
    """The app-wide override when one is set, otherwise a client from settings."""
    override = getattr(request.app.state, "llm", None)
    if override is not None:
        return override
    return HttpLLM.from_config(cfg["llm"])


def event_stream(queue: asyncio.Queue) -> StreamingResponse:
    """Relay a turn queue as Server-Sent Events until its closing None."""

    async def relay():
        while (event := await queue.get()) is not None:
            yield f"data: {json.dumps(event, ensure_ascii=False)}\n\n"

    return StreamingResponse(relay(), media_type="text/event-stream")
