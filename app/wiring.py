from __future__ import annotations

import logging

from adapters.filesystem.node_store import FileSystemNodeStore
from adapters.layout.anchor_chain import AnchorChainLayoutEngine
from adapters.memory.node_store import InMemoryNodeStore
from app.config import AppSettings
from domain.ports.repositories import NodeStore
from domain.services.canvas_editing import CanvasEditor

logger = logging.getLogger(__name__)


def build_node_store(settings: AppSettings) -> NodeStore:
    if settings.store.backend == "memory":
        return InMemoryNodeStore()
    logger.info("Using canvas snapshots from %s", settings.store.data_dir)
    return FileSystemNodeStore(settings.store.data_dir)


def build_layout_engine(settings: AppSettings) -> AnchorChainLayoutEngine:
    return AnchorChainLayoutEngine(settings.layout.to_layout_config())


def build_canvas_editor(settings: AppSettings, store: NodeStore | None = None) -> CanvasEditor:
    return CanvasEditor(
        store=store if store is not None else build_node_store(settings),
        layout_engine=build_layout_engine(settings),
        config=settings.layout.to_layout_config(),
        history_limit=settings.history_limit,
    )
