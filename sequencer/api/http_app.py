"""
FastAPI bridge for Sequencer.

Exposes one plugin session over HTTP so a browser UI (or a test client)
can drive it without the design host:

    POST /api/v1/messages    - dispatch an inbound UI message
    POST /api/v1/selection   - change the document selection
    GET  /api/v1/state       - sequences, selection and selection state
    GET  /api/v1/audit       - drift findings for the document
    GET  /health             - liveness

The document tree is loaded from SEQUENCER_HTTP_DOCUMENT_PATH when set
and written back after every message.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from .._version import __version__
from ..compliance.audit import audit_document
from ..config import SequencerConfig
from ..document.tree import Document
from ..store.kv import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore
from .controller import PluginController
from .messages import sequence_payload

logger = logging.getLogger(__name__)


class HttpSettings(BaseSettings):
    """HTTP bridge configuration loaded from environment."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8765, description="Bind port")
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )
    document_path: str = Field(default="", description="JSON document tree to load and save")

    model_config = {"env_prefix": "SEQUENCER_HTTP_"}


class SelectionRequest(BaseModel):
    """Body of POST /selection."""

    element_ids: list[str] = Field(default_factory=list, alias="elementIds")

    model_config = {"populate_by_name": True}


def load_document(path: str) -> Document:
    """Load a document tree from JSON, or start an empty one."""
    if path and Path(path).exists():
        with open(path, encoding="utf-8") as f:
            return Document.from_dict(json.load(f))
    return Document()


def save_document(document: Document, path: str) -> None:
    if not path:
        return
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document.to_dict(), f, indent=2)


def open_kv(config: SequencerConfig) -> KeyValueStore:
    if config.storage.store_path:
        return SqliteKeyValueStore(
            config.storage.store_path, busy_timeout_ms=config.storage.busy_timeout_ms
        )
    return InMemoryKeyValueStore()


router = APIRouter()


def _controller(request: Request) -> PluginController:
    return request.app.state.controller


@router.post("/messages")
async def post_message(request: Request, body: dict[str, Any]) -> dict[str, Any]:
    controller = _controller(request)
    outbound = await controller.handle_message(body)
    save_document(controller.document, request.app.state.settings.document_path)
    return {"messages": outbound}


@router.post("/selection")
async def set_selection(request: Request, body: SelectionRequest) -> dict[str, Any]:
    controller = _controller(request)
    controller.drain()
    controller.document.select_ids(body.element_ids)
    return {"messages": controller.drain()}


@router.get("/state")
async def get_state(request: Request) -> dict[str, Any]:
    controller = _controller(request)
    selected = controller.store.resolve_selected()
    return {
        "sequences": [sequence_payload(s) for s in controller.store.list()],
        "selectedId": selected.id if selected else None,
        "selection": controller.analyzer.analyze_document().to_message(),
    }


@router.get("/audit")
async def get_audit(request: Request) -> dict[str, Any]:
    controller = _controller(request)
    findings = audit_document(controller.store, controller.registry)
    return {
        "findings": [f.to_dict() for f in findings],
        "violations": sum(1 for f in findings if f.is_violation),
    }


def create_app(
    config: SequencerConfig | None = None,
    settings: HttpSettings | None = None,
    kv: KeyValueStore | None = None,
    document: Document | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Engine configuration (from environment when omitted)
        settings: HTTP settings (from environment when omitted)
        kv: Key-value store override
        document: Document override
    """
    config = config or SequencerConfig.from_env()
    settings = settings or HttpSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        controller = PluginController(
            kv if kv is not None else open_kv(config),
            document if document is not None else load_document(settings.document_path),
            fallback_font=config.typeface.fallback,
        )
        controller.start()
        controller.drain()
        app.state.controller = controller
        app.state.settings = settings

        yield

        controller.stop()
        save_document(controller.document, settings.document_path)

    app = FastAPI(
        title="Sequencer",
        description="Sequential identifiers stamped into document text layers.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "sequencer", "version": __version__}

    return app
