"""Core configuration for the SolFlow analysis engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MAX_CALL_DEPTH = 20


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SOLFLOW_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "SolFlow Engine"
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Traversal bounds ─────────────────────────────────────────────────
    max_call_depth: int = Field(default=DEFAULT_MAX_CALL_DEPTH, ge=1)
    max_path_length: int = Field(default=500, ge=1)
    max_paths_per_query: int = Field(default=100, ge=1)

    # ── Data flow ────────────────────────────────────────────────────────
    # "container": a write to any element of a named array/mapping is
    # visible to a read of any element of the same container.
    # "literal-index": accesses with two distinct literal indices don't alias.
    storage_aliasing: Literal["container", "literal-index"] = "container"
    splice_modifiers: bool = True
    resolve_virtual_dispatch: bool = True

    # ── Plugins ──────────────────────────────────────────────────────────
    plugins_dir: str = "/etc/solflow/plugins"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
