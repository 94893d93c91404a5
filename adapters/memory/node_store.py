from __future__ import annotations

from collections.abc import Iterable
from typing import Dict, List

from domain.errors import CanvasNotFoundError, NodeNotFoundError
from domain.models import CanvasDocument, Node
from domain.ports.repositories import NodeStore


class InMemoryNodeStore(NodeStore):
    def __init__(self, documents: Iterable[CanvasDocument] = ()) -> None:
        self._canvases: Dict[str, Dict[str, Node]] = {}
        for document in documents:
            self.put_canvas(document)

    def canvas_ids(self) -> List[str]:
        return sorted(self._canvases)

    def put_canvas(self, document: CanvasDocument) -> None:
        self._canvases[document.canvas_id] = {node.id: node for node in document.nodes}

    def list(self, canvas_id: str) -> List[Node]:
        return list(self._canvas(canvas_id).values())

    def get(self, canvas_id: str, node_id: str) -> Node:
        node = self._canvas(canvas_id).get(node_id)
        if node is None:
            raise NodeNotFoundError(canvas_id, node_id)
        return node

    def create(self, canvas_id: str, node: Node) -> Node:
        nodes = self._canvases.setdefault(canvas_id, {})
        if node.id in nodes:
            msg = f"Node {node.id} already exists in canvas {canvas_id}"
            raise ValueError(msg)
        nodes[node.id] = node
        return node

    def update(self, canvas_id: str, node: Node) -> Node:
        nodes = self._canvas(canvas_id)
        if node.id not in nodes:
            raise NodeNotFoundError(canvas_id, node.id)
        nodes[node.id] = node
        return node

    def delete(self, canvas_id: str, node_id: str) -> Node:
        nodes = self._canvas(canvas_id)
        if node_id not in nodes:
            raise NodeNotFoundError(canvas_id, node_id)
        return nodes.pop(node_id)

    def _canvas(self, canvas_id: str) -> Dict[str, Node]:
        nodes = self._canvases.get(canvas_id)
        if nodes is None:
            raise CanvasNotFoundError(canvas_id)
        return nodes
