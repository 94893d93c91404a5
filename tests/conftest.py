from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from adapters.layout.anchor_chain import AnchorChainLayoutEngine
from adapters.memory.node_store import InMemoryNodeStore
from app.config import AppSettings, LayoutSettings, StoreSettings
from domain.models import LayoutConfig
from domain.services.canvas_editing import CanvasEditor


def _clear_storygraph_env() -> None:
    for key in list(os.environ):
        if key.startswith("STORYGRAPH_"):
            os.environ.pop(key, None)


_clear_storygraph_env()


@pytest.fixture(autouse=True)
def clear_storygraph_env() -> Generator[None, None, None]:
    _clear_storygraph_env()
    yield
    _clear_storygraph_env()


@pytest.fixture
def layout_config() -> LayoutConfig:
    return LayoutConfig()


@pytest.fixture
def layout_engine(layout_config: LayoutConfig) -> AnchorChainLayoutEngine:
    return AnchorChainLayoutEngine(layout_config)


@pytest.fixture
def node_store() -> InMemoryNodeStore:
    return InMemoryNodeStore()


@pytest.fixture
def canvas_editor(
    node_store: InMemoryNodeStore,
    layout_engine: AnchorChainLayoutEngine,
    layout_config: LayoutConfig,
) -> CanvasEditor:
    return CanvasEditor(store=node_store, layout_engine=layout_engine, config=layout_config)


@pytest.fixture
def store_settings(tmp_path: Path) -> StoreSettings:
    return StoreSettings(backend="filesystem", data_dir=tmp_path / "canvases")


@pytest.fixture
def store_settings_factory(store_settings: StoreSettings) -> Callable[..., StoreSettings]:
    def _factory(**overrides: object) -> StoreSettings:
        return store_settings.model_copy(update=overrides)

    return _factory


@pytest.fixture
def app_settings(store_settings: StoreSettings) -> AppSettings:
    return AppSettings(title="Test Canvas", layout=LayoutSettings(), store=store_settings)


@pytest.fixture
def app_settings_factory(
    store_settings_factory: Callable[..., StoreSettings],
) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        return AppSettings(title="Test Canvas", store=store_settings_factory(**overrides))

    return _factory
