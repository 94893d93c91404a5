from __future__ import annotations

import pytest

from adapters.memory.node_store import InMemoryNodeStore
from domain.errors import CanvasNotFoundError, NodeNotFoundError
from tests.helpers.node_fixtures import document_of, satellite, spine


def test_store_round_trips_nodes() -> None:
    store = InMemoryNodeStore([document_of("doc", spine("A"), satellite("S"))])

    store.update("doc", satellite("S", label="moved"))
    store.create("doc", satellite("T"))

    assert [node.id for node in store.list("doc")] == ["A", "S", "T"]
    assert store.get("doc", "S").label == "moved"
    assert store.delete("doc", "T").id == "T"
    assert store.canvas_ids() == ["doc"]


def test_store_errors() -> None:
    store = InMemoryNodeStore([document_of("doc", spine("A"))])

    with pytest.raises(CanvasNotFoundError):
        store.list("missing")
    with pytest.raises(NodeNotFoundError):
        store.update("doc", satellite("ghost"))
    with pytest.raises(NodeNotFoundError):
        store.delete("doc", "ghost")
    with pytest.raises(ValueError, match="already exists"):
        store.create("doc", spine("A"))
