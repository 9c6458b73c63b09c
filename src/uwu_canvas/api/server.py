"""fastapi server for uwu canvas.

exposes the canvas engine as REST endpoints for a browser frontend, plus the
generation, provider and json export routes the frontend talks to directly.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..core.aliases import AliasIndex
from ..core.assembler import ContentAssembler, build_generation_payload
from ..core.client import (
    ClaudeClient,
    ClientProtocol,
    GenerationError,
    GenerationRequest,
    HTTPGenerationClient,
    MockClient,
)
from ..core.constants import AUTO_SAVE_DELAY, DEFAULT_MODEL, DEFAULT_PROVIDER
from ..core.data2ui import Data2UIExporter
from ..core.folders import FolderManager
from ..core.generation import GeneratorRunner
from ..core.json_files import JsonFileError, JsonFileRoot, get_data_dir
from ..core.lifecycle import DeletionLifecycle
from ..core.models import FolderColor, Node, NodeType, Position, part_to_dict
from ..core.persistence import JsonFileKeyValueStore, KeyValueStore, PersistenceGateway, get_state_dir
from ..core.providers import ProviderCatalog
from ..core.scheduler import AsyncioScheduler, Scheduler
from ..core.store import CanvasStore

logger = logging.getLogger(__name__)


# --- pydantic models for api ---

class PositionModel(BaseModel):
    x: float = 0.0
    y: float = 0.0

    def to_position(self) -> Position:
        return Position(x=self.x, y=self.y)


class NodeCreate(BaseModel):
    """request to create a node."""
    type: str
    position: Optional[PositionModel] = None
    data: dict = {}


class NodeUpdate(BaseModel):
    """request to change a node's data and/or position."""
    data: dict = {}
    position: Optional[PositionModel] = None


class RenameRequest(BaseModel):
    alias: str


class FolderCreate(BaseModel):
    """request to wrap an existing node in a new folder."""
    node_id: str
    position: Optional[PositionModel] = None


class FolderChild(BaseModel):
    node_id: str


class FolderReorder(BaseModel):
    child_node_ids: list[str]


class FolderColorUpdate(BaseModel):
    color: str


class TextRequest(BaseModel):
    """free text that may contain @alias references."""
    text: str


class WriteJsonRequest(BaseModel):
    path: Any = None
    data: Any = None


class GenerateRequest(BaseModel):
    """generation service request: a prompt or structured messages."""
    prompt: Optional[str] = None
    messages: Optional[list[dict]] = None
    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            provider=self.provider,
            model=self.model,
            prompt=self.prompt,
            messages=self.messages,
        )


class DarkModeUpdate(BaseModel):
    enabled: bool


# --- app state ---

class AppState:
    """wires one canvas store to its services."""

    def __init__(
        self,
        state_dir: Optional[Path] = None,
        data_dir: Optional[Path] = None,
        mock: bool = False,
        generation_url: Optional[str] = None,
        autosave_delay: float = AUTO_SAVE_DELAY,
        scheduler: Optional[Scheduler] = None,
        kv: Optional[KeyValueStore] = None,
        client: Optional[ClientProtocol] = None,
        catalog: Optional[ProviderCatalog] = None,
    ):
        self.mock = mock
        self.generation_url = generation_url
        self._client = client

        self.store = CanvasStore(scheduler=scheduler or AsyncioScheduler())
        self.aliases = AliasIndex(self.store)
        self.assembler = ContentAssembler(self.store)
        self.folders = FolderManager(self.store)
        self.lifecycle = DeletionLifecycle(self.store)
        self.gateway = PersistenceGateway(
            self.store,
            kv or JsonFileKeyValueStore(state_dir or get_state_dir()),
            delay=autosave_delay,
        )
        self.files = JsonFileRoot(data_dir or get_data_dir())
        self.exporter = Data2UIExporter(self.store, self.files)
        self.catalog = catalog or ProviderCatalog()
        self._runner: Optional[GeneratorRunner] = None

    @property
    def client(self) -> ClientProtocol:
        if self._client is None:
            if self.mock:
                self._client = MockClient()
            elif self.generation_url:
                self._client = HTTPGenerationClient(self.generation_url)
            else:
                self._client = ClaudeClient()
        return self._client

    @property
    def runner(self) -> GeneratorRunner:
        if self._runner is None:
            self._runner = GeneratorRunner(self.store, self.client)
        return self._runner

    def startup(self) -> None:
        """hydrate from durable storage, then start autosaving."""
        self.gateway.load_from_storage()
        self.gateway.load_dark_mode()
        self.gateway.start()
        for node in self.store.nodes:
            if node.type is NodeType.DATA2UI:
                self.exporter.watch(node.id)

    async def shutdown(self) -> None:
        if self._runner is not None:
            await self._runner.stop_all()
        self.exporter.unwatch_all()
        self.lifecycle.cancel_pending()
        self.gateway.flush()
        self.gateway.stop()

    def canvas_dict(self) -> dict:
        store = self.store
        return {
            "nodes": [node.to_dict() for node in store.nodes],
            "counters": store.counters.to_dict(),
            "selectedNodeId": store.selected_node_id,
            "isDarkMode": store.is_dark_mode,
            "deletingNodeIds": sorted(store.deleting_node_ids),
            "duplicateAliasNotice": store.duplicate_alias_notice,
            "pulses": [p.to_dict() for p in store.pulses],
            "canUndo": self.lifecycle.can_undo,
            "lastSavedAt": self.gateway.last_saved_at,
        }


state = AppState()


def _get_node(node_id: str) -> Node:
    node = state.store.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"node not found: {node_id}")
    return node


def _get_folder(folder_id: str) -> Node:
    node = _get_node(folder_id)
    if node.type is not NodeType.FOLDER:
        raise HTTPException(status_code=400, detail=f"not a folder: {folder_id}")
    return node


# --- lifespan ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup: load the saved canvas and begin autosaving
    state.startup()
    yield
    # shutdown: stop generations and write anything pending
    await state.shutdown()


# --- app ---

app = FastAPI(
    title="uwu canvas api",
    description="REST API for the uwu canvas node graph",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- canvas ---

@app.get("/health")
async def health():
    """health check."""
    return {"status": "ok"}


@app.get("/canvas")
async def get_canvas():
    """full canvas state including transient ui state."""
    return state.canvas_dict()


@app.post("/canvas/save")
async def save_canvas():
    """write the canvas to durable storage now."""
    state.gateway.cancel_pending()
    if not state.gateway.save_to_storage():
        raise HTTPException(status_code=500, detail="could not save canvas")
    return {"status": "saved", "lastSavedAt": state.gateway.last_saved_at}


@app.post("/canvas/load")
async def load_canvas():
    """reload the canvas from durable storage."""
    if not state.gateway.load_from_storage():
        raise HTTPException(status_code=404, detail="no saved canvas")
    return state.canvas_dict()


@app.post("/canvas/clear")
async def clear_canvas():
    state.lifecycle.cancel_pending()
    state.lifecycle.clear_undo_state()
    state.store.clear_canvas()
    return state.canvas_dict()


@app.get("/dark-mode")
async def get_dark_mode():
    return {"enabled": state.store.is_dark_mode}


@app.put("/dark-mode")
async def set_dark_mode(req: DarkModeUpdate):
    state.store.set_dark_mode(req.enabled)
    return {"enabled": state.store.is_dark_mode}


# --- nodes ---

@app.post("/nodes")
async def create_node(req: NodeCreate):
    """add a node; the alias is always assigned by the store."""
    try:
        node_type = NodeType(req.type)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid type: {req.type}")

    position = req.position.to_position() if req.position else None
    node_id = state.store.add_node(node_type, position=position, data=req.data)
    if node_type is NodeType.DATA2UI:
        state.exporter.watch(node_id)
    return state.store.get_node(node_id).to_dict()


@app.patch("/nodes/{node_id}")
async def update_node(node_id: str, req: NodeUpdate):
    """shallow-merge data changes. a colliding alias is dropped, not an error."""
    _get_node(node_id)
    if req.data:
        state.store.update_node(node_id, req.data)
    if req.position:
        state.store.move_node(node_id, req.position.to_position())
    return {
        "node": state.store.get_node(node_id).to_dict(),
        "duplicateAliasNotice": state.store.duplicate_alias_notice,
    }


@app.delete("/nodes/{node_id}")
async def delete_node(node_id: str):
    """start the two-phase delete. the node disappears after the grace period."""
    _get_node(node_id)
    state.runner.stop(node_id)
    state.exporter.unwatch(node_id)
    if not state.lifecycle.mark_node_for_deletion(node_id):
        raise HTTPException(status_code=400, detail=f"node already being deleted: {node_id}")
    return {"status": "deleting", "id": node_id, "gracePeriod": state.lifecycle.grace_period}


@app.post("/undo")
async def undo_delete():
    """restore the most recently deleted node."""
    node_id = state.lifecycle.undo_delete()
    if node_id is None:
        if state.lifecycle.can_undo:
            alias = state.lifecycle.last_deleted_node.alias
            raise HTTPException(status_code=400, detail=f"alias already exists: @{alias}")
        raise HTTPException(status_code=400, detail="nothing to undo")
    node = state.store.get_node(node_id)
    if node.type is NodeType.DATA2UI:
        state.exporter.watch(node_id)
    return node.to_dict()


@app.post("/nodes/{node_id}/rename")
async def rename_node(node_id: str, req: RenameRequest):
    _get_node(node_id)
    if not state.store.rename_alias(node_id, req.alias):
        notice = state.store.duplicate_alias_notice
        detail = f"alias already exists: @{notice}" if notice else f"invalid alias: {req.alias}"
        raise HTTPException(status_code=400, detail=detail)
    return state.store.get_node(node_id).to_dict()


@app.post("/nodes/{node_id}/select")
async def select_node(node_id: str):
    _get_node(node_id)
    state.store.select_node(node_id)
    return {"selectedNodeId": node_id}


@app.delete("/selection")
async def clear_selection():
    state.store.select_node(None)
    return {"selectedNodeId": None}


# --- folders ---

@app.post("/folders")
async def create_folder(req: FolderCreate):
    """wrap an existing node in a new folder."""
    _get_node(req.node_id)
    position = req.position.to_position() if req.position else None
    folder_id = state.folders.create_folder_with_node(req.node_id, position)
    if folder_id is None:
        raise HTTPException(status_code=400, detail=f"node cannot be placed in a folder: {req.node_id}")
    return state.store.get_node(folder_id).to_dict()


@app.post("/folders/{folder_id}/children")
async def add_folder_child(folder_id: str, req: FolderChild):
    _get_folder(folder_id)
    _get_node(req.node_id)
    if not state.folders.add_node_to_folder(folder_id, req.node_id):
        raise HTTPException(status_code=400, detail=f"node cannot be placed in this folder: {req.node_id}")
    return state.store.get_node(folder_id).to_dict()


@app.delete("/folders/{folder_id}/children/{node_id}")
async def remove_folder_child(folder_id: str, node_id: str):
    _get_folder(folder_id)
    if not state.folders.remove_node_from_folder(folder_id, node_id):
        raise HTTPException(status_code=404, detail=f"node not in folder: {node_id}")
    return state.store.get_node(folder_id).to_dict()


@app.put("/folders/{folder_id}/order")
async def reorder_folder(folder_id: str, req: FolderReorder):
    _get_folder(folder_id)
    state.folders.reorder_folder_children(folder_id, req.child_node_ids)
    return state.store.get_node(folder_id).to_dict()


@app.post("/folders/{folder_id}/toggle")
async def toggle_folder(folder_id: str):
    _get_folder(folder_id)
    return {"isExpanded": state.folders.toggle_folder_expanded(folder_id)}


@app.put("/folders/{folder_id}/color")
async def set_folder_color(folder_id: str, req: FolderColorUpdate):
    _get_folder(folder_id)
    try:
        color = FolderColor(req.color)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid color: {req.color}")
    state.folders.set_folder_color(folder_id, color)
    return state.store.get_node(folder_id).to_dict()


@app.post("/folders/{folder_id}/ungroup")
async def ungroup_folder(folder_id: str):
    """delete the folder but keep its children on the canvas."""
    _get_folder(folder_id)
    return {"freedNodeIds": state.folders.ungroup_folder(folder_id)}


# --- aliases and assembly ---

@app.get("/aliases")
async def list_aliases(q: str = Query("", description="filter by alias or label")):
    return [option.to_dict() for option in state.aliases.filter_aliases(q)]


@app.get("/aliases/map")
async def alias_map():
    return {alias: entry.to_dict() for alias, entry in state.aliases.get_alias_map().items()}


@app.post("/resolve")
async def resolve_text(req: TextRequest):
    """substitute every known @alias with its flattened value."""
    return {"text": state.aliases.resolve_all_aliases(req.text)}


@app.post("/assemble")
async def assemble_text(req: TextRequest):
    """build the multi-part generation input for free text."""
    parts = state.assembler.build_message_content(req.text)
    return {
        "parts": [part_to_dict(p) for p in parts],
        "payload": build_generation_payload(parts),
    }


# --- generators ---

@app.post("/nodes/{node_id}/run")
async def run_generator(node_id: str):
    """start a generator in the background. poll /canvas for streamed output."""
    node = _get_node(node_id)
    if node.type is not NodeType.GENERATOR:
        raise HTTPException(status_code=400, detail=f"not a generator: {node_id}")
    if not node.data.input.strip():
        raise HTTPException(status_code=400, detail="generator input is empty")
    if node.data.is_running or state.runner.start(node_id) is None:
        raise HTTPException(status_code=400, detail="generator is already running")
    return {"status": "running", "id": node_id}


@app.post("/nodes/{node_id}/stop")
async def stop_generator(node_id: str):
    _get_node(node_id)
    return {"stopped": state.runner.stop(node_id)}


# --- data2ui ---

@app.post("/nodes/{node_id}/export")
async def export_node(node_id: str):
    """run a data2ui export. validation problems come back as an error message."""
    node = _get_node(node_id)
    if node.type is not NodeType.DATA2UI:
        raise HTTPException(status_code=400, detail=f"not a data2ui node: {node_id}")
    return state.exporter.apply(node_id).to_dict()


@app.get("/nodes/{node_id}/sources")
async def export_sources(node_id: str):
    _get_node(node_id)
    return {"sources": state.exporter.available_sources()}


@app.post("/write-json")
async def write_json(req: WriteJsonRequest):
    try:
        path = state.files.write(req.path, req.data)
    except JsonFileError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        logger.exception("error writing json file")
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "path": path}


@app.get("/list-json-files")
async def list_json_files():
    try:
        return {"files": state.files.list_files()}
    except OSError as e:
        logger.exception("error listing json files")
        raise HTTPException(status_code=500, detail=str(e))


# --- generation service ---

@app.get("/providers")
async def list_providers():
    providers = await state.catalog.fetch()
    return {"providers": {key: data.to_dict() for key, data in providers.items()}}


@app.post("/generate")
async def generate(req: GenerateRequest):
    """stream plain text chunks for a prompt or structured messages."""
    if not req.messages and not (req.prompt and req.prompt.strip()):
        raise HTTPException(status_code=400, detail="Invalid prompt")

    chunks = state.client.stream_text(req.to_request())
    # pull the first chunk eagerly so failures become a proper error response
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = ""
    except GenerationError as e:
        logger.exception("generation failed")
        raise HTTPException(status_code=500, detail=f"Error: {e}")

    async def body() -> AsyncIterator[str]:
        if first:
            yield first
        try:
            async for chunk in chunks:
                yield chunk
        except GenerationError as e:
            logger.exception("generation failed mid-stream")
            yield f"\n\nError: {e}"

    return StreamingResponse(body(), media_type="text/plain; charset=utf-8")


@app.post("/generate-image")
async def generate_image(req: GenerateRequest):
    if not req.prompt or not req.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")
    try:
        result = await state.client.generate_image(req.to_request())
    except GenerationError as e:
        logger.exception("image generation failed")
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()


# --- entrypoint ---

def main():
    """run the api server."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="uwu canvas api server")
    parser.add_argument("--host", default="127.0.0.1", help="host to bind")
    parser.add_argument("--port", "-p", type=int, default=8000, help="port to bind")
    parser.add_argument("--mock", "-m", action="store_true", help="use mock generation client")
    parser.add_argument("--generation-url", help="use a remote generation service instead of claude")
    parser.add_argument("--state-dir", type=Path, help="durable state directory (default: $UWU_STATE_DIR or ~/.uwu-canvas)")
    parser.add_argument("--data-dir", type=Path, help="json export root (default: $UWU_DATA_DIR or ./data/uwu-canvas)")
    parser.add_argument(
        "--autosave-delay",
        type=float,
        default=AUTO_SAVE_DELAY,
        help=f"quiet period before autosave in seconds (default: {AUTO_SAVE_DELAY})",
    )
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # configure state
    global state
    state = AppState(
        state_dir=args.state_dir,
        data_dir=args.data_dir,
        mock=args.mock,
        generation_url=args.generation_url,
        autosave_delay=args.autosave_delay,
    )

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
