"""
SQL Tutor web server.

A FastAPI server that serves the notebook frontend and exposes the
transcript store and query executor as JSON endpoints.

Usage:
    sqltutor web                      # Start server on localhost:8000
    sqltutor web -p 3000              # Custom port
    sqltutor web --static-dir ./out   # Serve a built frontend
"""

from __future__ import annotations

import asyncio
import sys
import webbrowser
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncGenerator, Protocol

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from sqltutor.executor import (
    PoolRegistry,
    QueryExecutor,
    QueryOutcome,
    bytea_text,
    make_pool_factory,
    render_outcome,
)
from sqltutor.runtime import RuntimeConfig, get_global_config
from sqltutor.transcript import (
    GENERAL_SESSION_ID,
    Entry,
    EntryKind,
    InvalidTargetError,
    MalformedInputError,
    NotFoundError,
    OutOfBoundsError,
    StaleRevisionError,
    TranscriptError,
    TranscriptStore,
    paginate,
    parse,
    parse_database,
    revision,
    split_saved_query,
)


# =============================================================================
# State Management
# =============================================================================


class Executor(Protocol):
    async def execute(self, sql: str, database: str) -> QueryOutcome: ...

    async def list_databases(self) -> list[str]: ...


@dataclass
class AppState:
    """Services shared by all requests of one app."""

    store: TranscriptStore
    executor: Executor
    registry: PoolRegistry | None = None

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> AppState:
        """Build the store, pool registry and executor for a config."""
        registry = PoolRegistry(make_pool_factory(config))
        return cls(
            store=TranscriptStore(
                config.history_dir,
                page_size=config.page_size,
                default_database=config.default_database,
            ),
            executor=QueryExecutor(
                registry,
                default_database=config.default_database,
                timeout=config.query_timeout,
            ),
            registry=registry,
        )


def get_state(request: Request) -> AppState:
    return request.app.state.sqltutor


_STATUS_CODES: dict[type[TranscriptError], int] = {
    NotFoundError: 404,
    OutOfBoundsError: 400,
    InvalidTargetError: 400,
    MalformedInputError: 400,
    StaleRevisionError: 409,
}


async def transcript_error_handler(request: Request, exc: TranscriptError) -> JSONResponse:
    """Turn transcript errors into JSON responses with a matching status."""
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# =============================================================================
# Pydantic Models
# =============================================================================


class SessionModel(BaseModel):
    """A session in the sidebar list."""

    id: str
    name: str
    timestamp: int  # milliseconds since epoch


class CreateSessionRequest(BaseModel):
    """Request to create a session."""

    name: str | None = None
    database: str | None = None


class CreateSessionResponse(BaseModel):
    id: str


class ContentResponse(BaseModel):
    """Raw document of a session."""

    content: str
    database: str
    revision: str


class EntryModel(BaseModel):
    """One parsed entry."""

    index: int
    type: str
    content: str
    name: str | None = None


class PagesResponse(BaseModel):
    """Parsed entries of a session, grouped into pages."""

    entries: list[EntryModel]
    pages: list[list[EntryModel]]
    revision: str


class AppendRequest(BaseModel):
    """Append an entry. Saved queries take a name or a preformatted payload."""

    type: str | None = None
    content: str | None = None
    name: str | None = None


class PatchSessionRequest(BaseModel):
    """Rename a session, or replace the content of one entry."""

    name: str | None = None
    index: int | None = None
    content: str | None = None
    revision: str | None = None


class ExecuteRequest(BaseModel):
    """Run SQL inside a session."""

    model_config = ConfigDict(populate_by_name=True)

    sql: str | None = None
    session_id: str | None = Field(default=None, alias="sessionId")


class ExecuteResponse(BaseModel):
    """Outcome of running SQL."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = Field(default=0, alias="rowCount")
    markdown: str | None = None
    error: str | None = None


class StatusResponse(BaseModel):
    success: bool = True


# =============================================================================
# Helpers
# =============================================================================


def _entry_model(entry: Entry) -> EntryModel:
    return EntryModel(**entry.to_dict())


def _append(store: TranscriptStore, session_id: str, request: AppendRequest, default_type: str) -> None:
    kind = EntryKind.from_wire(request.type or default_type)

    if kind is EntryKind.PAGE_BREAK:
        store.insert_page_break(session_id)
        return

    if not request.content:
        raise HTTPException(status_code=400, detail="Content is required")

    if kind is EntryKind.SAVED_QUERY:
        if request.name:
            name, sql = request.name, request.content
        else:
            name, sql = split_saved_query(request.content)
        store.append(session_id, kind, sql, name=name)
    else:
        store.append(session_id, kind, request.content)


def _content_response(store: TranscriptStore, session_id: str) -> ContentResponse:
    document = store.read_or_empty(session_id)
    return ContentResponse(
        content=document,
        database=parse_database(document) or store.default_database,
        revision=revision(document),
    )


# =============================================================================
# API Routes
# =============================================================================


router = APIRouter(prefix="/api")


@router.get("/databases", response_model=list[str])
async def list_databases(state: AppState = Depends(get_state)):
    """List databases sessions can be bound to."""
    try:
        return await state.executor.list_databases()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/execute", response_model=ExecuteResponse)
async def execute(request: ExecuteRequest, state: AppState = Depends(get_state)):
    """
    Run SQL in a session and record it.

    The query is appended before it runs; its result or error is
    appended after. A failed statement answers 400 with the error text.
    """
    if not request.sql or not request.session_id:
        raise HTTPException(status_code=400, detail="Missing sql or sessionId")

    store = state.store
    await asyncio.to_thread(store.append, request.session_id, EntryKind.QUERY, request.sql)
    database = await asyncio.to_thread(store.get_database, request.session_id)

    outcome = await state.executor.execute(request.sql, database)

    if not outcome.ok:
        await asyncio.to_thread(store.append, request.session_id, EntryKind.ERROR, outcome.error)
        response = ExecuteResponse(success=False, error=outcome.error)
        return JSONResponse(status_code=400, content=jsonable_encoder(response, by_alias=True))

    markdown = render_outcome(outcome)
    await asyncio.to_thread(store.append, request.session_id, EntryKind.RESULT, markdown)
    return ExecuteResponse(
        success=True,
        rows=jsonable_encoder(outcome.rows, custom_encoder={bytes: bytea_text}),
        row_count=outcome.row_count,
        markdown=markdown,
    )


# -----------------------------------------------------------------------------
# Sessions
# -----------------------------------------------------------------------------


@router.get("/history", response_model=list[SessionModel])
def list_sessions(state: AppState = Depends(get_state)):
    """List sessions, most recent first."""
    return [
        SessionModel(id=s.id, name=s.name, timestamp=int(s.timestamp * 1000))
        for s in state.store.list_sessions()
    ]


@router.post("/history", response_model=CreateSessionResponse)
def create_session(request: CreateSessionRequest, state: AppState = Depends(get_state)):
    """Create a session bound to a database."""
    if not request.name:
        raise HTTPException(status_code=400, detail="Name is required")
    return CreateSessionResponse(id=state.store.create(request.name, request.database))


# -----------------------------------------------------------------------------
# General saved queries (registered before /history/{session_id})
# -----------------------------------------------------------------------------


@router.get("/history/general", response_model=ContentResponse)
def get_general(state: AppState = Depends(get_state)):
    """Raw document of the shared saved-query store."""
    return _content_response(state.store, GENERAL_SESSION_ID)


@router.post("/history/general", response_model=StatusResponse)
def append_general(request: AppendRequest, state: AppState = Depends(get_state)):
    """Save a query to the shared store."""
    _append(state.store, GENERAL_SESSION_ID, request, "saved-query")
    return StatusResponse()


@router.delete("/history/general", response_model=StatusResponse)
def delete_general(
    index: int | None = None,
    expected_revision: str | None = Query(default=None, alias="revision"),
    state: AppState = Depends(get_state),
):
    """Delete a saved query from the shared store."""
    if index is None:
        raise HTTPException(status_code=400, detail="Index is required")
    state.store.delete_entry(GENERAL_SESSION_ID, index, expected_revision=expected_revision)
    return StatusResponse()


# -----------------------------------------------------------------------------
# Single session
# -----------------------------------------------------------------------------


@router.get("/history/{session_id}", response_model=ContentResponse)
def get_session_content(session_id: str, state: AppState = Depends(get_state)):
    """Raw document of a session. A missing session reads as empty."""
    return _content_response(state.store, session_id)


@router.get("/history/{session_id}/pages", response_model=PagesResponse)
def get_session_pages(session_id: str, state: AppState = Depends(get_state)):
    """Parsed entries of a session with their indices, grouped into pages."""
    document = state.store.read_or_empty(session_id)
    entries = parse(document)
    return PagesResponse(
        entries=[_entry_model(e) for e in entries],
        pages=[[_entry_model(e) for e in page] for page in paginate(entries)],
        revision=revision(document),
    )


@router.post("/history/{session_id}", response_model=StatusResponse)
def append_entry(session_id: str, request: AppendRequest, state: AppState = Depends(get_state)):
    """Append a note, diagram, saved query or other entry."""
    _append(state.store, session_id, request, "note")
    return StatusResponse()


@router.patch("/history/{session_id}", response_model=StatusResponse)
def patch_session(session_id: str, request: PatchSessionRequest, state: AppState = Depends(get_state)):
    """Replace one entry's content when index and content are given, else rename."""
    if request.index is not None and request.content is not None:
        state.store.update_entry(
            session_id,
            request.index,
            request.content,
            name=request.name,
            expected_revision=request.revision,
        )
        return StatusResponse()

    if request.name:
        state.store.update_title(session_id, request.name)
        return StatusResponse()

    raise HTTPException(status_code=400, detail="Invalid request parameters")


@router.delete("/history/{session_id}", response_model=StatusResponse)
def delete_session(
    session_id: str,
    index: int | None = None,
    expected_revision: str | None = Query(default=None, alias="revision"),
    state: AppState = Depends(get_state),
):
    """Delete one entry when index is given, otherwise the whole session."""
    if index is not None:
        state.store.delete_entry(session_id, index, expected_revision=expected_revision)
    else:
        state.store.delete(session_id)
    return StatusResponse()


# =============================================================================
# FastAPI App
# =============================================================================


def create_app(state: AppState | None = None, static_dir: str | None = None) -> FastAPI:
    """
    Build the FastAPI app around a set of services.

    Args:
        state: Store and executor to serve (built from the global config if None)
        static_dir: Built frontend to serve at / (optional)
    """
    if state is None:
        state = AppState.from_config(get_global_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        if state.registry is not None:
            await state.registry.close_all()

    app = FastAPI(
        title="SQL Tutor",
        description="Run SQL and keep a replayable notebook of it",
        lifespan=lifespan,
    )
    app.state.sqltutor = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(TranscriptError, transcript_error_handler)
    app.include_router(router)

    # Mount last so /api routes take precedence
    if static_dir:
        static_path = Path(static_dir)
        if static_path.exists():
            app.mount("/", StaticFiles(directory=str(static_path), html=True), name="static")
        else:
            print(f"Warning: Static directory not found: {static_dir}", file=sys.stderr)

    return app


# =============================================================================
# Server Runner
# =============================================================================


def run_server(
    config: RuntimeConfig,
    host: str = "127.0.0.1",
    port: int = 8000,
    static_dir: str | None = None,
    open_browser: bool = True,
):
    """
    Run the SQL Tutor web server.

    Args:
        config: Runtime configuration
        host: Host to bind to
        port: Port to bind to
        static_dir: Path to the frontend build directory (optional)
        open_browser: Open browser on startup
    """
    import uvicorn

    app = create_app(AppState.from_config(config), static_dir=static_dir)

    # Open browser after a short delay
    if open_browser:
        def open_browser_delayed():
            import time
            time.sleep(1)
            webbrowser.open(f"http://{host}:{port}")

        import threading
        threading.Thread(target=open_browser_delayed, daemon=True).start()

    print(f"SQL Tutor running at http://{host}:{port}")
    print(f"Sessions are stored in {config.history_dir}")
    print("Press Ctrl+C to stop")

    uvicorn.run(app, host=host, port=port, log_level="debug" if config.verbose else "warning")
