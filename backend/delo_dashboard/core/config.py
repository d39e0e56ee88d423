"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "DELO_"
DEFAULT_CONFIG_PATH = Path("~/.config/delo-dashboard/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("server", "cors_origins"): "cors_origins",
    ("server", "page_size"): "page_size",
    ("search", "default_top_k"): "search_default_top_k",
    ("search", "preview_chars"): "search_preview_chars",
    ("costs", "avg_tokens_per_query"): "avg_tokens_per_query",
    ("costs", "avg_tokens_per_chunk"): "avg_tokens_per_chunk",
    ("costs", "embedding_cost_per_1m_tokens"): "embedding_cost_per_1m_tokens",
    ("costs", "avg_chunks_processed_per_query"): "avg_chunks_processed_per_query",
    ("costs", "cache_hit_rate"): "cache_hit_rate",
    ("coverage", "min_chunks"): "coverage_min_chunks",
    ("health", "stale_after_days"): "stale_after_days",
    ("health", "hot_entity_min_chunks"): "hot_entity_min_chunks",
    ("health", "cold_entity_max_chunks"): "cold_entity_max_chunks",
    ("cache", "ttl_seconds"): "query_cache_ttl_seconds",
    ("keys", "prefix"): "api_key_prefix",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".delo-dashboard" / "dashboard.db")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://127.0.0.1:3000", "http://localhost:3000"]
    )
    page_size: int = 25
    search_default_top_k: int = 20
    search_preview_chars: int = 300
    avg_tokens_per_query: int = 200
    avg_tokens_per_chunk: int = 150
    embedding_cost_per_1m_tokens: float = 0.02
    avg_chunks_processed_per_query: int = 50
    cache_hit_rate: float = 0.3
    coverage_min_chunks: int = 10
    stale_after_days: int = 90
    hot_entity_min_chunks: int = 20
    cold_entity_max_chunks: int = 2
    query_cache_ttl_seconds: float = 30.0
    api_key_prefix: str = "dm_"

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with DELO_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
