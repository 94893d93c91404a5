from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from domain.models import Node


class NodeStore(Protocol):
    def list(self, canvas_id: str) -> Sequence[Node]: ...

    def get(self, canvas_id: str, node_id: str) -> Node: ...

    def create(self, canvas_id: str, node: Node) -> Node: ...

    def update(self, canvas_id: str, node: Node) -> Node: ...

    def delete(self, canvas_id: str, node_id: str) -> Node: ...
