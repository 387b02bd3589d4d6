"""
Pre/post-save interceptors, registered per entity type.

Repositories call ``run_before`` after document validation and right
before the flush, and ``run_after`` once the flush succeeded.  Hooks get a
``SaveContext`` describing what the caller changed on the entity, captured
before any hook runs (so a hook can ask "did the caller touch ``rate``?").
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

Hook = Callable[["SaveContext", Any], Awaitable[None]]


@dataclass
class SaveContext:
    session: AsyncSession
    is_new: bool
    modified: set[str] = field(default_factory=set)
    previous: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def capture(cls, session: AsyncSession, entity: Any) -> "SaveContext":
        state = inspect(entity)
        modified: set[str] = set()
        previous: dict[str, Any] = {}
        for attr in state.attrs:
            history = attr.history
            if history.has_changes():
                modified.add(attr.key)
                if history.deleted:
                    previous[attr.key] = history.deleted[0]
        return cls(
            session=session,
            is_new=state.transient or state.pending,
            modified=modified,
            previous=previous,
        )

    def touched(self, key: str) -> bool:
        return key in self.modified


class SaveInterceptors:
    def __init__(self) -> None:
        self._before: dict[type, list[Hook]] = defaultdict(list)
        self._after: dict[type, list[Hook]] = defaultdict(list)

    def before_save(self, model: type, hook: Hook) -> None:
        self._before[model].append(hook)

    def after_save(self, model: type, hook: Hook) -> None:
        self._after[model].append(hook)

    async def run_before(self, ctx: SaveContext, entity: Any) -> None:
        for hook in self._before.get(type(entity), []):
            await hook(ctx, entity)

    async def run_after(self, ctx: SaveContext, entity: Any) -> None:
        for hook in self._after.get(type(entity), []):
            await hook(ctx, entity)
