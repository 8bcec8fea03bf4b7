"""FastAPI server that streams a daily-report transform as live table snapshots.

Each POST /api/transform starts a run and answers with Server-Sent Events: a
``snapshot`` event per applied fragment (rows + reconciliation), then either
``final`` or ``error``.  GET /api/state exposes the run state, cooldown and
last failure so a client can disable its button while cooling down.

Usage:
    python -m daily_report.web.app
    # => Uvicorn running on http://localhost:8000
"""

import asyncio
import contextlib
import json
import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.responses import StreamingResponse

from daily_report.config import WEB_PORT
from daily_report.templates.registry import TEMPLATES
from daily_report.transform.backend import OpenAIBackend
from daily_report.transform.errors import EmptyInputError, RunRejectedError
from daily_report.transform.session import RunContext, RunOutcome, TransformSession

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# In-memory state (lost on server restart)
# ---------------------------------------------------------------------------

_SESSION: TransformSession | None = None  # initialised at startup


def build_session() -> TransformSession:
    """Create the process-wide transform session."""
    return TransformSession(OpenAIBackend())


class TransformRequest(BaseModel):
    """Body of POST /api/transform."""

    text: str
    template: str | None = None
    columns: list[str] | None = None
    roster: list[str] | None = None
    restart: bool = False


def _sse_line(payload: dict) -> str:
    """Format a single SSE ``data:`` line (with trailing double-newline)."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _snapshot_payload(ctx: RunContext) -> dict:
    return {
        "type": "snapshot",
        "run_id": ctx.run_id,
        "rows": ctx.rows,
        "reconciliation": ctx.reconciliation.model_dump(mode="json"),
    }


# ---------------------------------------------------------------------------
# Run streaming (runs in a background thread, pushes SSE events via queue)
# ---------------------------------------------------------------------------


def _stream_run_thread(
    session: TransformSession,
    ctx: RunContext,
    loop: asyncio.AbstractEventLoop,
    event_queue: asyncio.Queue,
) -> None:
    """Drive ``session.stream(ctx)`` synchronously and push SSE event strings into *event_queue*."""

    def _put(payload: dict) -> None:
        loop.call_soon_threadsafe(event_queue.put_nowait, _sse_line(payload))

    try:
        for update in session.stream(ctx):
            _put(_snapshot_payload(update))

        if ctx.outcome is RunOutcome.SUCCESS:
            _put({"type": "final", **ctx.to_dict()})
        elif ctx.outcome is RunOutcome.FAILURE and ctx.failure is not None:
            _put({"type": "error", "run_id": ctx.run_id, **ctx.failure.model_dump(mode="json")})
        else:
            _put({"type": "abandoned", "run_id": ctx.run_id})

    except Exception:  # pylint: disable=broad-exception-caught
        logger.exception("Transform streaming error")
        _put({"type": "error", "run_id": ctx.run_id, "category": "internal", "message": "The transform encountered an error."})

    # Sentinel to signal the async generator that the stream is finished
    loop.call_soon_threadsafe(event_queue.put_nowait, None)


def _launch_stream(session: TransformSession, ctx: RunContext) -> asyncio.Queue:
    """Start driving the run in a background thread and return the queue its SSE lines arrive on.

    The thread starts before any response byte is sent, so the run reaches an
    outcome even if the client never reads the body.
    """
    loop = asyncio.get_running_loop()
    event_queue: asyncio.Queue = asyncio.Queue()
    thread = threading.Thread(target=_stream_run_thread, args=(session, ctx, loop, event_queue), daemon=True)
    thread.start()
    return event_queue


async def _sse_event_generator(session: TransformSession, ctx: RunContext, event_queue: asyncio.Queue):
    """Async generator that yields SSE lines from the run's stream.

    Relays events pushed by the background thread until its sentinel.  If the
    client goes away first, the run is abandoned so the session returns to idle.
    """
    try:
        yield _sse_line({"type": "started", "run_id": ctx.run_id, "columns": list(ctx.columns), "roster": list(ctx.roster)})

        # Relay SSE events from the queue until the sentinel (None) arrives
        while True:
            event = await event_queue.get()
            if event is None:
                break
            yield event
    finally:
        if not ctx.finished:
            logger.info("Client disconnected from run %d", ctx.run_id)
            session.abandon(ctx)


async def _cooldown_clock(session: TransformSession) -> None:
    """Tick the session's cooldown once per second for the life of the server."""
    while True:
        await asyncio.sleep(1)
        session.tick()


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Create the transform session and start the cooldown clock."""
    global _SESSION  # pylint: disable=global-statement
    _SESSION = build_session()
    clock = asyncio.create_task(_cooldown_clock(_SESSION))
    logger.info("Transform session ready, listening for requests.")
    yield
    clock.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await clock


app = FastAPI(title="Daily Report Transformer", lifespan=lifespan)


def _session() -> TransformSession:
    if _SESSION is None:
        raise HTTPException(status_code=503, detail="Server is still starting")
    return _SESSION


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/api/templates")
async def list_templates():
    """Return every template's label, columns and default roster."""
    return JSONResponse({template_id: template.model_dump() for template_id, template in TEMPLATES.items()})


@app.get("/api/state")
async def get_state():
    """Return the run state, cooldown, last failure and the current run's table."""
    return JSONResponse(_session().snapshot())


@app.post("/api/transform")
async def transform(body: TransformRequest):
    """Start a run and stream its table snapshots as SSE events."""
    session = _session()
    try:
        ctx = session.start(body.text, body.template, body.columns, body.roster, restart=body.restart)
    except EmptyInputError as exc:
        raise HTTPException(status_code=400, detail={"category": exc.category, "message": str(exc)}) from exc
    except RunRejectedError as exc:
        raise HTTPException(status_code=409, detail={"category": exc.category, "message": str(exc)}) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail={"category": "unknown_template", "message": str(exc)}) from exc

    event_queue = _launch_stream(session, ctx)
    return StreamingResponse(
        _sse_event_generator(session, ctx, event_queue),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main():
    """Start the web server via uvicorn."""
    import uvicorn  # pylint: disable=import-outside-toplevel

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    uvicorn.run(app, host="0.0.0.0", port=WEB_PORT)


if __name__ == "__main__":
    main()
