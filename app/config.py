from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from domain.models import LayoutConfig

DEFAULT_CONFIG_PATH = Path("config/storygraph.yaml")


class LayoutSettings(BaseModel):
    base_width: float = Field(default=200.0, gt=0)
    pixels_per_second: float = Field(default=20.0, gt=0)
    default_duration: float = Field(default=5.0, ge=0)
    spine_gap: float = 100.0
    satellite_gap: float = 50.0
    stack_gap: float = 50.0
    pixels_per_track: float = 120.0
    spine_height: float = 130.0
    satellite_height: float = 180.0
    attic_margin_top: float = 50.0
    attic_height: float = 80.0
    attic_item_width: float = 180.0
    attic_item_height: float = 60.0
    attic_item_gap: float = 10.0
    side_zone_ratio: float = Field(default=0.2, gt=0, le=1)
    top_zone_height: float = 50.0
    void_drop_threshold: float = Field(default=300.0, ge=0)
    max_chain_hops: int = Field(default=500, gt=0)
    strict: bool = False

    def to_layout_config(self) -> LayoutConfig:
        return LayoutConfig(**self.model_dump())


class StoreSettings(BaseModel):
    backend: Literal["memory", "filesystem"] = "filesystem"
    data_dir: Path = Path("data/canvases")

    @field_validator("backend", mode="before")
    @classmethod
    def normalize_backend(cls, value: object) -> str:
        return str(value).strip().lower() if value else "filesystem"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STORYGRAPH_", env_nested_delimiter="__")

    title: str = "Story Graph"
    layout: LayoutSettings = LayoutSettings()
    store: StoreSettings = StoreSettings()
    history_limit: int = Field(default=100, gt=0)

    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("STORYGRAPH_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
