"""
Canvas Backend - FastAPI Application

This is the main entry point for the canvas backend.
It provides:
- REST API for canvas operations (import, element CRUD, z-order, grouping, undo/redo)
- Snap queries for arrow endpoints
- Save/load of the canvas state blob
- WebSocket endpoint for real-time updates
- CORS configuration for local frontend development
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Literal, Optional

import structlog
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from canvas_core.compiler import CompileOptions, compile_text
from canvas_core.config import Settings, get_settings
from canvas_core.elements import ArrowBinding, Viewport, parse_element
from canvas_core.errors import ParseError
from canvas_core.parsers import DiagramFormat, example_text, parse_diagram
from canvas_core.snap import snap_arrow_point
from canvas_core.storage import load_canvas_state, save_canvas_state
from canvas_core.store import ElementStore
from canvas_core.validation import validate_graph, validation_summary

from .websocket_manager import CanvasBroadcaster

logger = structlog.get_logger(__name__)


# --- Request models ---

class ImportRequest(BaseModel):
    text: str
    format: Optional[DiagramFormat] = None
    start_x: float = 100
    start_y: float = 100
    enable_bend: bool = True
    style_preset: Literal["colorful", "serious"] = "colorful"
    curve_strength: float = 0.7


class ParseRequest(BaseModel):
    text: str
    format: Optional[DiagramFormat] = None


class CreateElementRequest(BaseModel):
    """Either a full element record or a type plus position for a default element."""
    element: Optional[dict[str, Any]] = None
    type: Optional[str] = None
    x: float = 0
    y: float = 0
    src: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None


class CreateArrowRequest(BaseModel):
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    start_binding: Optional[ArrowBinding] = None
    end_binding: Optional[ArrowBinding] = None


class ArrowPointRequest(BaseModel):
    point: Literal["start", "end"]
    x: float
    y: float
    binding: Optional[ArrowBinding] = None


class BatchUpdateRequest(BaseModel):
    updates: dict[str, dict[str, Any]]


class IdsRequest(BaseModel):
    ids: list[str]


class RotateRequest(BaseModel):
    ids: list[str]
    angle: float


class SetRotationRequest(BaseModel):
    ids: list[str]
    rotation: float


class ReorderRequest(BaseModel):
    ids: list[str]
    action: Literal["front", "back", "forward", "backward"]


class SelectionRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)
    mode: Literal["replace", "toggle", "clear"] = "replace"


class ViewportRequest(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None
    scale: Optional[float] = Field(default=None, gt=0)


class SnapRequest(BaseModel):
    x: float
    y: float
    arrow_id: Optional[str] = None
    threshold: Optional[float] = None


class StoragePathRequest(BaseModel):
    path: Optional[str] = None


def create_app(settings: Optional[Settings] = None, store: Optional[ElementStore] = None) -> FastAPI:
    """
    Build the FastAPI app around one ElementStore.

    Args:
        settings: Settings to use (defaults to get_settings())
        store: Existing store to serve (a new empty one by default)
    """
    settings = settings or get_settings()
    store = store or ElementStore(history_limit=settings.history_limit)
    ws_manager = CanvasBroadcaster(store)

    # --- Async change notification ---
    # Bridge between sync store callbacks and async WebSocket broadcasts

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        change_event = asyncio.Event()
        store.on_change(change_event.set)

        async def change_broadcaster():
            while True:
                await change_event.wait()
                change_event.clear()
                await ws_manager.notify_canvas_updated()

        broadcaster_task = asyncio.create_task(change_broadcaster())
        logger.info("canvas backend started", elements=len(store.elements))

        yield

        broadcaster_task.cancel()
        try:
            await broadcaster_task
        except asyncio.CancelledError:
            pass

    app = FastAPI(
        title="Canvas API",
        description="Backend API for the diagram canvas",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.settings = settings
    app.state.ws_manager = ws_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def state_response(**extra) -> dict:
        return {"success": True, **extra, "canvas": store.get_state().to_json_dict()}

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "connections": ws_manager.connection_count}

    # --- Canvas State ---

    @app.get("/api/canvas")
    async def get_canvas():
        """Get the current canvas state."""
        return {
            **store.get_state().to_json_dict(),
            "can_undo": store.can_undo,
            "can_redo": store.can_redo,
        }

    # --- Import ---

    @app.post("/api/parse")
    async def parse_text(request: ParseRequest):
        """Parse diagram text into a graph without touching the canvas."""
        try:
            graph = parse_diagram(request.text, request.format)
        except ParseError as e:
            raise HTTPException(status_code=400, detail=str(e))
        issues = validate_graph(graph)
        return {
            "success": True,
            "graph": graph.to_json_dict(),
            "issues": [issue.to_dict() for issue in issues],
            "summary": validation_summary(issues),
        }

    @app.post("/api/import")
    async def import_diagram(request: ImportRequest):
        """Parse, lay out and compile diagram text, then insert it as one undoable step."""
        options = CompileOptions(
            enable_bend=request.enable_bend,
            style_preset=request.style_preset,
            curve_strength=request.curve_strength,
            node_spacing=settings.node_spacing,
            layer_spacing=settings.layer_spacing,
        )
        try:
            elements = compile_text(request.text, request.format, request.start_x,
                                    request.start_y, options)
        except ParseError as e:
            raise HTTPException(status_code=400, detail=str(e))
        store.import_elements(elements)
        return state_response(imported=[e.id for e in elements])

    @app.get("/api/examples/{fmt}")
    async def get_example(fmt: DiagramFormat, variant: str = Query(default="class")):
        """Sample text for a diagram format."""
        return {"format": fmt.value, "text": example_text(fmt, variant)}

    # --- Element Operations ---

    @app.post("/api/elements")
    async def create_element(request: CreateElementRequest):
        """Create an element from a full record, or a default one of the given type."""
        try:
            if request.element is not None:
                element = store.add_element(parse_element(request.element))
            elif request.type is not None:
                element = store.create_element(request.type, request.x, request.y,
                                               src=request.src, width=request.width,
                                               height=request.height)
            else:
                raise HTTPException(status_code=400, detail="Either element or type is required")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "element": element.model_dump(mode="json")}

    @app.patch("/api/elements/{element_id}")
    async def update_element(element_id: str, updates: dict[str, Any]):
        """Apply a partial update to one element."""
        try:
            element = store.update_element(element_id, updates, rebind=True)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if element is None:
            raise HTTPException(status_code=404, detail="Element not found")
        return {"success": True, "element": element.model_dump(mode="json")}

    @app.post("/api/elements/batch")
    async def update_elements(request: BatchUpdateRequest):
        """Apply an update batch atomically."""
        try:
            store.update_elements(request.updates, rebind=True)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return state_response()

    @app.delete("/api/elements")
    async def delete_elements(ids: list[str] = Query(default=[])):
        """Delete elements by id."""
        store.delete_elements(ids)
        return state_response()

    @app.post("/api/elements/rotate")
    async def rotate_elements(request: RotateRequest):
        """Rotate elements by a delta (rigidly when several)."""
        store.rotate_elements(request.ids, request.angle)
        return state_response()

    @app.post("/api/elements/rotation")
    async def set_rotation(request: SetRotationRequest):
        """Set an absolute rotation."""
        store.set_rotation(request.ids, request.rotation)
        return state_response()

    @app.post("/api/elements/reorder")
    async def reorder_elements(request: ReorderRequest):
        """Change z-order."""
        actions = {
            "front": store.bring_to_front,
            "back": store.send_to_back,
            "forward": store.bring_forward,
            "backward": store.send_backward,
        }
        actions[request.action](request.ids)
        return state_response()

    @app.post("/api/elements/group")
    async def group_elements(request: IdsRequest):
        """Group two or more elements."""
        group = store.group_elements(request.ids)
        if group is None:
            raise HTTPException(status_code=400, detail="Need at least 2 elements to group")
        return state_response(group_id=group.id)

    @app.post("/api/elements/ungroup")
    async def ungroup_elements(request: IdsRequest):
        """Dissolve groups into their children."""
        released = store.ungroup_elements(request.ids)
        return state_response(released=[e.id for e in released])

    # --- Arrows ---

    @app.post("/api/arrows")
    async def create_arrow(request: CreateArrowRequest):
        """Create an arrow between two points."""
        arrow = store.create_arrow((request.start_x, request.start_y),
                                   (request.end_x, request.end_y),
                                   request.start_binding, request.end_binding)
        return {"success": True, "element": arrow.model_dump(mode="json")}

    @app.patch("/api/arrows/{arrow_id}/point")
    async def update_arrow_point(arrow_id: str, request: ArrowPointRequest):
        """Move one arrow endpoint and set its binding."""
        arrow = store.update_arrow_point(arrow_id, request.point, request.x, request.y,
                                         request.binding)
        if arrow is None:
            raise HTTPException(status_code=404, detail="Arrow not found")
        return {"success": True, "element": arrow.model_dump(mode="json")}

    @app.post("/api/snap")
    async def snap_point(request: SnapRequest):
        """Snap a point to the nearest anchor within the threshold."""
        threshold = request.threshold if request.threshold is not None else settings.snap_threshold
        result = snap_arrow_point(request.x, request.y, store.elements, request.arrow_id, threshold)
        return result.to_dict()

    # --- Selection, Viewport & Clipboard ---

    @app.post("/api/selection")
    async def update_selection(request: SelectionRequest):
        """Replace, toggle or clear the selection."""
        if request.mode == "clear":
            store.clear_selection()
        elif request.mode == "toggle":
            for element_id in request.ids:
                store.toggle_selection(element_id)
        else:
            store.select(request.ids)
        return {"success": True, "selected_ids": store.selected_ids}

    @app.patch("/api/viewport")
    async def update_viewport(request: ViewportRequest):
        """Pan or zoom."""
        viewport: Viewport = store.update_viewport(**request.model_dump())
        return {"success": True, "viewport": viewport.model_dump()}

    @app.post("/api/clipboard/copy")
    async def copy_selected():
        return {"success": True, "copied": store.copy_selected()}

    @app.post("/api/clipboard/paste")
    async def paste():
        pasted = store.paste()
        return state_response(pasted=[e.id for e in pasted])

    # --- Undo/Redo ---

    @app.post("/api/undo")
    async def undo():
        """Undo the last action."""
        if store.undo():
            return state_response()
        return {"success": False, "message": "Nothing to undo"}

    @app.post("/api/redo")
    async def redo():
        """Redo the last undone action."""
        if store.redo():
            return state_response()
        return {"success": False, "message": "Nothing to redo"}

    @app.post("/api/batch/begin")
    async def begin_batch():
        """Start a gesture: later updates collapse into one history entry."""
        store.begin_batch_update()
        return {"success": True, "batching": store.is_batching}

    @app.post("/api/batch/end")
    async def end_batch():
        store.end_batch_update()
        return {"success": True, "batching": store.is_batching}

    # --- Persistence ---

    @app.post("/api/canvas/save")
    async def save_canvas(request: StoragePathRequest):
        """Save the canvas state blob."""
        try:
            path = save_canvas_state(store.get_state(), request.path)
        except OSError as e:
            raise HTTPException(status_code=500, detail=f"Failed to save: {e}")
        return {"success": True, "path": str(path)}

    @app.post("/api/canvas/load")
    async def load_canvas(request: StoragePathRequest):
        """Load the canvas state blob; corrupt or missing state leaves the canvas as is."""
        state = load_canvas_state(request.path)
        if state is None:
            return {"success": False, "message": "No saved canvas state"}
        store.load_state(state)
        return state_response()

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for real-time updates.

        Clients receive the current canvas on connect, then canvas_updated events.
        """
        await ws_manager.connect(websocket)

        try:
            while True:
                data = await websocket.receive_text()
                await ws_manager.handle_message(websocket, data)
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)

    return app


# --- Run with uvicorn ---

if __name__ == "__main__":
    import uvicorn

    from canvas_core.logging_config import setup_logging

    setup_logging()
    _settings = get_settings()
    uvicorn.run(create_app(_settings), host=_settings.api_host, port=_settings.api_port)
