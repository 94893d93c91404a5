from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, List, TypeVar

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from app.config import AppSettings, load_settings
from app.wiring import build_canvas_editor
from domain.errors import (
    CanvasNotFoundError,
    ChangeCommitError,
    MalformedNodeError,
    NodeNotFoundError,
)
from domain.models import CanvasDocument, ChangeSet, ConnectionMode, Node, NodeType, Point
from domain.ports.repositories import NodeStore
from domain.services.canvas_editing import CanvasEditor, EditOutcome
from domain.services.zone_classification import classify_zone, find_root

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LayoutRequest(BaseModel):
    nodes: List[Node] = Field(default_factory=list)


class LinkRequest(BaseModel):
    child_id: str
    parent_id: str
    mode: ConnectionMode
    insert: bool = False
    drift_x: float = 0.0
    drift_y: int = 0


class ParkRequest(BaseModel):
    spine_id: str


class ChangeTypeRequest(BaseModel):
    type: NodeType


class PositionRequest(BaseModel):
    x: float
    y: float


class DriftRequest(BaseModel):
    drift_x: float
    drift_y: int = 0


class DropRequest(BaseModel):
    node_id: str
    x: float
    y: float


def create_app(settings: AppSettings, store: NodeStore | None = None) -> FastAPI:
    app = FastAPI(title=settings.title)
    editor = build_canvas_editor(settings, store)

    def get_editor() -> CanvasEditor:
        return editor

    @app.get("/api/health")
    def api_health() -> ORJSONResponse:
        return ORJSONResponse({"status": "ok"})

    @app.post("/api/layout")
    def api_layout(
        request: LayoutRequest, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        try:
            CanvasDocument(canvas_id="inline", nodes=request.nodes)
            plan = editor.layout_engine.compute_layout(request.nodes)
        except MalformedNodeError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ORJSONResponse(plan.to_dict())

    @app.put("/api/canvases/{canvas_id}")
    def api_put_canvas(
        canvas_id: str,
        request: LayoutRequest,
        editor: CanvasEditor = Depends(get_editor),
    ) -> ORJSONResponse:
        try:
            document = CanvasDocument(canvas_id=canvas_id, nodes=request.nodes)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        put_canvas = getattr(editor.store, "put_canvas", None)
        if put_canvas is None:
            raise HTTPException(status_code=405, detail="Store does not accept whole canvases")
        put_canvas(document)
        editor.history(canvas_id).clear()
        logger.info("Loaded canvas %s with %d nodes", canvas_id, len(document.nodes))
        return ORJSONResponse({"status": "ok", "canvas_id": canvas_id, "nodes": len(document.nodes)})

    @app.get("/api/canvases/{canvas_id}/layout")
    def api_canvas_layout(
        canvas_id: str, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        plan = _guard(lambda: editor.layout(canvas_id))
        return ORJSONResponse(plan.to_dict())

    @app.get("/api/canvases/{canvas_id}/drop-zones")
    def api_drop_zones(
        canvas_id: str, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        zones = _guard(lambda: editor.drop_zones(canvas_id))
        return ORJSONResponse({"zones": [zone.to_dict() for zone in zones]})

    @app.get("/api/canvases/{canvas_id}/nodes/{node_id}/zone")
    def api_node_zone(
        canvas_id: str, node_id: str, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        snapshot = _guard(lambda: editor.snapshot(canvas_id))
        node = snapshot.get(node_id)
        if node is None:
            raise HTTPException(status_code=404, detail="Node not found")
        root = find_root(snapshot)
        root_id = root.id if root else None
        return ORJSONResponse(
            {"node_id": node_id, "zone": classify_zone(node, root_id), "is_root": node_id == root_id}
        )

    @app.post("/api/canvases/{canvas_id}/validate-link")
    def api_validate_link(
        canvas_id: str, request: LinkRequest, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        validation = _guard(
            lambda: editor.validate_link(
                canvas_id, request.child_id, request.parent_id, request.mode, request.insert
            )
        )
        return ORJSONResponse(validation.to_dict())

    @app.post("/api/canvases/{canvas_id}/link")
    def api_link(
        canvas_id: str, request: LinkRequest, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        outcome = _guard(
            lambda: editor.link(
                canvas_id,
                request.child_id,
                request.parent_id,
                request.mode,
                insert=request.insert,
                drift_x=request.drift_x,
                drift_y=request.drift_y,
            )
        )
        return _outcome_response(outcome)

    @app.post("/api/canvases/{canvas_id}/nodes/{node_id}/unlink")
    def api_unlink(
        canvas_id: str, node_id: str, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        return _outcome_response(_guard(lambda: editor.unlink(canvas_id, node_id)))

    @app.post("/api/canvases/{canvas_id}/nodes/{node_id}/park")
    def api_park(
        canvas_id: str,
        node_id: str,
        request: ParkRequest,
        editor: CanvasEditor = Depends(get_editor),
    ) -> ORJSONResponse:
        return _outcome_response(_guard(lambda: editor.park(canvas_id, node_id, request.spine_id)))

    @app.post("/api/canvases/{canvas_id}/nodes/{node_id}/bucket")
    def api_bucket(
        canvas_id: str, node_id: str, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        return _outcome_response(_guard(lambda: editor.move_to_bucket(canvas_id, node_id)))

    @app.post("/api/canvases/{canvas_id}/nodes/{node_id}/type")
    def api_change_type(
        canvas_id: str,
        node_id: str,
        request: ChangeTypeRequest,
        editor: CanvasEditor = Depends(get_editor),
    ) -> ORJSONResponse:
        return _outcome_response(
            _guard(lambda: editor.change_type(canvas_id, node_id, request.type))
        )

    @app.post("/api/canvases/{canvas_id}/nodes/{node_id}/position")
    def api_position(
        canvas_id: str,
        node_id: str,
        request: PositionRequest,
        editor: CanvasEditor = Depends(get_editor),
    ) -> ORJSONResponse:
        return _outcome_response(
            _guard(lambda: editor.move(canvas_id, node_id, request.x, request.y))
        )

    @app.post("/api/canvases/{canvas_id}/nodes/{node_id}/drift")
    def api_drift(
        canvas_id: str,
        node_id: str,
        request: DriftRequest,
        editor: CanvasEditor = Depends(get_editor),
    ) -> ORJSONResponse:
        return _outcome_response(
            _guard(
                lambda: editor.set_drift(canvas_id, node_id, request.drift_x, request.drift_y)
            )
        )

    @app.post("/api/canvases/{canvas_id}/drop")
    def api_drop(
        canvas_id: str, request: DropRequest, editor: CanvasEditor = Depends(get_editor)
    ) -> ORJSONResponse:
        outcome = _guard(
            lambda: editor.drop(canvas_id, request.node_id, Point(request.x, request.y))
        )
        return _outcome_response(outcome)

    @app.post("/api/canvases/{canvas_id}/undo")
    def api_undo(canvas_id: str, editor: CanvasEditor = Depends(get_editor)) -> ORJSONResponse:
        return _history_response(_guard(lambda: editor.undo(canvas_id)))

    @app.post("/api/canvases/{canvas_id}/redo")
    def api_redo(canvas_id: str, editor: CanvasEditor = Depends(get_editor)) -> ORJSONResponse:
        return _history_response(_guard(lambda: editor.redo(canvas_id)))

    return app


def _guard(action: Callable[[], T]) -> T:
    try:
        return action()
    except CanvasNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Canvas not found") from exc
    except NodeNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Node not found") from exc
    except MalformedNodeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ChangeCommitError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _outcome_response(outcome: EditOutcome) -> ORJSONResponse:
    if not outcome.validation.valid:
        code = outcome.validation.code
        status = 404 if code in {"child_missing", "parent_missing"} else 409
        raise HTTPException(status_code=status, detail=outcome.validation.reason)
    return ORJSONResponse(outcome.to_dict())


def _history_response(change_set: ChangeSet | None) -> ORJSONResponse:
    payload: dict[str, Any] = {"applied": change_set is not None}
    if change_set is not None:
        payload["name"] = change_set.name
        payload["changed"] = change_set.node_ids()
    return ORJSONResponse(payload)


app = create_app(load_settings())
