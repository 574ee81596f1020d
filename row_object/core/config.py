"""Entity and persistence configuration models."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

HOOK_NAMES = ("before_save", "after_save", "before_delete", "after_delete")


class SurfaceConfig(BaseModel):
    """Field/method exposure for a generated surface (REST, MCP, CLI)."""

    enabled: bool = True
    include: list[str] | None = None
    exclude: list[str] | None = None

    def exposes(self, name: str) -> bool:
        if not self.enabled:
            return False
        if self.include is not None and name not in self.include:
            return False
        return not (self.exclude and name in self.exclude)


class AIConfig(BaseModel):
    """Methods an AI client may call through ``do()``."""

    callable: list[str] | Literal["public", "all"] | None = None
    exclude: list[str] = []
    descriptions: dict[str, str] = {}


class ObjectConfig(BaseModel):
    """Registration options of one entity class."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    name: str | None = None
    table_name: str | None = None
    api: SurfaceConfig = SurfaceConfig()
    mcp: SurfaceConfig = SurfaceConfig()
    cli: SurfaceConfig = SurfaceConfig()
    ai: AIConfig = AIConfig()
    hooks: dict[str, str | Callable[..., Any]] = {}

    @field_validator("hooks")
    @classmethod
    def _known_hooks(
        cls, hooks: dict[str, str | Callable[..., Any]]
    ) -> dict[str, str | Callable[..., Any]]:
        unknown = sorted(set(hooks) - set(HOOK_NAMES))
        if unknown:
            raise ValueError(f"Unknown hook(s) {unknown}; expected one of {list(HOOK_NAMES)}")
        return hooks


class PersistenceOptions(BaseModel):
    """Where a collection stores its rows and which AI client it uses.

    ``persistence`` describes storage by configuration, e.g.
    ``{"type": "sqlite", "database": "app.db"}`` or ``{"type": "memory"}``;
    ``db`` passes a ready storage backend or Database instead.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    persistence: dict[str, Any] = {}
    db: Any = None
    ai: Any = None

    @classmethod
    def coerce(cls, options: PersistenceOptions | dict[str, Any] | None) -> PersistenceOptions:
        if options is None:
            return cls()
        if isinstance(options, PersistenceOptions):
            return options
        return cls(**options)

    def cache_key(self) -> str:
        """Canonical serialization used as the collection cache key."""
        return json.dumps(
            {
                "persistence": self.persistence,
                "has_db": self.db is not None,
                "has_ai": self.ai is not None,
            },
            sort_keys=True,
            default=str,
        )
