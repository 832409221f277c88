"""
Core API backend for conductor.

On startup the lifespan hook launches every tool provider, discovers their tools and builds the
agent loop.  If any provider fails to start the application refuses to serve.

Endpoints:
- **GET /health**                      - liveness check plus provider status.
- **GET /api/tools**                   - the merged tool namespace.
- **POST /api/chat**                   - one turn, streamed as Server-Sent Events:
  ``{"message": "...", "history": [...]}``.
- **GET /api/records**                 - raw record list for the UI panel.
- **POST /api/records/{id}/complete**  - quick-complete, bypassing the engine.
- **DELETE /api/records/{id}**         - quick-delete, bypassing the engine.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Sequence,
    Set,
)

from fastapi import (
    APIRouter,
    FastAPI,
    HTTPException,
    Request,
)
from fastapi.responses import StreamingResponse

from conductor.agent.agent_loop import AgentLoop
from conductor.agent.engine import (
    BaseEngine,
    load_engine,
)
from conductor.agent.events import format_sse
from conductor.api.models import (
    ChatRequest,
    OkResponse,
    ToolInfo,
)
from conductor.common import (
    AnsiColors,
    colored_print,
)
from conductor.config import settings
from conductor.providers.records import RecordStore
from conductor.providers.supervisor import (
    ProcessSupervisor,
    ProviderSpec,
    default_provider_specs,
)
from conductor.tools import ToolRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("/health", summary="Health check")
async def health(request: Request) -> Dict[str, Any]:
    """Return a liveness payload with the state of each provider."""
    supervisor: ProcessSupervisor = request.app.state.supervisor
    return {"status": "ok", "providers": {h.name: h.alive for h in supervisor.handles}}


@router.get("/api/tools", response_model=List[ToolInfo], summary="List registered tools")
async def list_tools(request: Request) -> List[ToolInfo]:
    """Return every tool the engine can see, with its owning provider."""
    registry: ToolRegistry = request.app.state.registry
    return [
        ToolInfo(
            name=d.name,
            description=d.description,
            provider=registry.owner(d.name),
            input_schema=d.input_schema,
        )
        for d in registry.descriptors()
    ]


@router.post("/api/chat", summary="Run one conversational turn")
async def chat(req: ChatRequest, request: Request) -> StreamingResponse:
    """
    Run the agent loop for one turn and stream its progress events.

    Events: ``tool_call``, ``tool_result``, ``final_response``, then ``turn_complete`` with the full
    updated conversation, or a single ``error``.  If the client disconnects the turn still runs to
    completion; only the remaining events are lost.
    """
    agent: AgentLoop = request.app.state.agent
    turns: Set["asyncio.Task[Any]"] = request.app.state.turns

    stream, task = agent.start_turn(req.message, req.history)
    turns.add(task)
    task.add_done_callback(turns.discard)

    async def event_generator() -> AsyncIterator[str]:
        try:
            async for event in stream:
                yield format_sse(event)
        finally:
            stream.detach()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/api/records", summary="List stored records")
async def list_records(request: Request) -> List[Dict[str, Any]]:
    """Return the raw record list."""
    store: RecordStore = request.app.state.store
    return store.all()


@router.post("/api/records/{record_id}/complete", response_model=OkResponse)
async def complete_record(record_id: str, request: Request) -> OkResponse:
    """Mark a record completed without going through the engine."""
    store: RecordStore = request.app.state.store
    if store.complete(record_id) is None:
        raise HTTPException(status_code=404, detail="Not found")
    return OkResponse()


@router.delete("/api/records/{record_id}", response_model=OkResponse)
async def delete_record(record_id: str, request: Request) -> OkResponse:
    """Delete a record without going through the engine."""
    store: RecordStore = request.app.state.store
    if store.delete(record_id) is None:
        raise HTTPException(status_code=404, detail="Not found")
    return OkResponse()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(
    engine: Optional[BaseEngine] = None,
    provider_specs: Optional[Sequence[ProviderSpec]] = None,
    store: Optional[RecordStore] = None,
    max_rounds: Optional[int] = None,
) -> FastAPI:
    """
    Build the API application.

    Parameters
    ----------
    engine:
        Reasoning engine; defaults to ``load_engine()`` at startup.
    provider_specs:
        Providers to launch; defaults to the record-store and analysis providers.
    store:
        Record store behind the quick actions; defaults to ``DATA_DIR/records.json``.
    max_rounds:
        Engine rounds allowed per turn; defaults to ``settings.MAX_ROUNDS``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry = ToolRegistry()
        supervisor = ProcessSupervisor(registry)
        specs = default_provider_specs() if provider_specs is None else list(provider_specs)
        await supervisor.start_all(specs)

        app.state.registry = registry
        app.state.supervisor = supervisor
        app.state.agent = AgentLoop(engine or load_engine(), registry, max_rounds)
        app.state.store = store or RecordStore()
        app.state.turns = set()
        logger.info("Serving %d tools from %d providers", len(registry), len(supervisor.handles))
        try:
            yield
        finally:
            turns: Set["asyncio.Task[Any]"] = app.state.turns
            for task in list(turns):
                task.cancel()
            if turns:
                await asyncio.gather(*turns, return_exceptions=True)
            await supervisor.shutdown()

    app = FastAPI(
        title="Conductor API",
        version="0.1.0",
        description="Conversational orchestrator over stdio tool providers",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0",
    port: Optional[int] = None,
    reload: bool = False,
    log_level: str | None = None,
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL
    if port is None:
        port = settings.API_PORT

    logger.info(
        "Starting conductor API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    colored_print(f"🚀 Conductor API is running at http://localhost:{port}.", AnsiColors.GREEN)
    uvicorn.run(
        "conductor.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m conductor.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
