"""Mutable holder for the user's current engagement context."""

from __future__ import annotations

from typing import Any

from .models import EngagementContext


class ContextModel:
    """Session-scoped :class:`EngagementContext` with a merge-style updater.

    Defaults are home / medium energy / 30 minutes. Nothing is persisted.
    """

    def __init__(self) -> None:
        self._current = EngagementContext()
        self._version = 0

    @property
    def current(self) -> EngagementContext:
        return self._current

    @property
    def version(self) -> int:
        return self._version

    def update(self, **partial: Any) -> EngagementContext:
        """Merge ``partial`` into the context.

        Values are validated for enum membership only; unknown keys raise a
        pydantic ``ValidationError``.
        """
        merged = EngagementContext.model_validate(
            {**self._current.model_dump(), **partial}
        )
        self._current = merged
        self._version += 1
        return merged

    def reset(self) -> EngagementContext:
        self._current = EngagementContext()
        self._version += 1
        return self._current


__all__ = ["ContextModel"]
