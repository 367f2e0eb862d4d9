"""
timetravel.events  ──  Decorators for record create/update hooks

    from timetravel import on

    @on.update(42)
    def audit(record): ...
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .core.record import Record

Handler = Callable[["Record"], None]

EVENT_TYPES = ("create", "update")


class HookRegistry:
    """Central registry for change handlers"""

    def __init__(self):
        # Maps event type -> list of (record id filter, handler)
        self._handlers: Dict[str, List[Tuple[Optional[frozenset], Handler]]] = (
            defaultdict(list)
        )

    def register(
        self,
        event_type: str,
        record_ids: Tuple[int, ...],
        handler: Handler,
    ) -> None:
        """Register a handler; an empty `record_ids` matches every record"""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event type {event_type!r}")
        ids = frozenset(record_ids) if record_ids else None
        self._handlers[event_type].append((ids, handler))

    def emit(self, event_type: str, record: Record) -> None:
        """Call matching handlers in registration order"""
        for ids, handler in list(self._handlers[event_type]):
            if ids is None or record.id in ids:
                handler(record)

    def clear(self) -> None:
        self._handlers.clear()


# Global registry instance
registry = HookRegistry()


class OnDecorator:
    """Namespace for hook decorators bound to one registry"""

    def __init__(self, hooks: HookRegistry):
        self._hooks = hooks

    def create(self, *record_ids: int) -> Callable[[Handler], Handler]:
        """Decorator for handling record creation"""

        def decorator(func: Handler) -> Handler:
            self._hooks.register("create", record_ids, func)
            return func

        return decorator

    def update(self, *record_ids: int) -> Callable[[Handler], Handler]:
        """Decorator for handling record updates (current or retroactive)"""

        def decorator(func: Handler) -> Handler:
            self._hooks.register("update", record_ids, func)
            return func

        return decorator


# Export the decorator interface
on = OnDecorator(registry)
