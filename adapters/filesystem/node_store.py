from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import List, TypeVar

from filelock import FileLock

from adapters.filesystem.json_utils import load_snapshot, save_snapshot
from domain.errors import CanvasNotFoundError, NodeNotFoundError
from domain.models import CanvasDocument, Node
from domain.ports.repositories import NodeStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FileSystemNodeStore(NodeStore):
    """One ``<canvas_id>.json`` snapshot file per canvas.

    Every write is a locked read-modify-write of the whole file, replaced
    atomically, so concurrent processes never observe a half-written canvas.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir

    def path_for(self, canvas_id: str) -> Path:
        return self.data_dir / f"{canvas_id}.json"

    def canvas_ids(self) -> List[str]:
        if not self.data_dir.exists():
            return []
        return sorted(path.stem for path in self.data_dir.glob("*.json"))

    def put_canvas(self, document: CanvasDocument) -> None:
        path = self.path_for(document.canvas_id)
        with self._lock(path):
            save_snapshot(document, path)

    def list(self, canvas_id: str) -> List[Node]:
        return list(self._read(canvas_id).nodes)

    def get(self, canvas_id: str, node_id: str) -> Node:
        for node in self._read(canvas_id).nodes:
            if node.id == node_id:
                return node
        raise NodeNotFoundError(canvas_id, node_id)

    def create(self, canvas_id: str, node: Node) -> Node:
        def apply(nodes: List[Node]) -> Node:
            if any(existing.id == node.id for existing in nodes):
                msg = f"Node {node.id} already exists in canvas {canvas_id}"
                raise ValueError(msg)
            nodes.append(node)
            return node

        return self._modify(canvas_id, apply, create_missing=True)

    def update(self, canvas_id: str, node: Node) -> Node:
        def apply(nodes: List[Node]) -> Node:
            for index, existing in enumerate(nodes):
                if existing.id == node.id:
                    nodes[index] = node
                    return node
            raise NodeNotFoundError(canvas_id, node.id)

        return self._modify(canvas_id, apply)

    def delete(self, canvas_id: str, node_id: str) -> Node:
        def apply(nodes: List[Node]) -> Node:
            for index, existing in enumerate(nodes):
                if existing.id == node_id:
                    return nodes.pop(index)
            raise NodeNotFoundError(canvas_id, node_id)

        return self._modify(canvas_id, apply)

    def _read(self, canvas_id: str) -> CanvasDocument:
        path = self.path_for(canvas_id)
        if not path.exists():
            raise CanvasNotFoundError(canvas_id)
        return load_snapshot(path)

    def _modify(
        self,
        canvas_id: str,
        apply: Callable[[List[Node]], T],
        create_missing: bool = False,
    ) -> T:
        path = self.path_for(canvas_id)
        with self._lock(path):
            if path.exists():
                nodes = list(load_snapshot(path).nodes)
            elif create_missing:
                nodes = []
            else:
                raise CanvasNotFoundError(canvas_id)
            result = apply(nodes)
            save_snapshot(CanvasDocument(canvas_id=canvas_id, nodes=nodes), path)
        logger.debug("Wrote canvas %s (%d nodes)", canvas_id, len(nodes))
        return result

    def _lock(self, path: Path) -> FileLock:
        path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(str(path.with_suffix(f"{path.suffix}.lock")))
