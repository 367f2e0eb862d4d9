"""
RecordService – the one entry point the transport layer talks to.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .core.attributes import Delta, initial_attributes
from .core.errors import RecordNotFoundError
from .core.record import Record
from .events import HookRegistry, registry
from .persistence.store import VersionStore

logger = logging.getLogger(__name__)


class RecordService:
    """Create-or-update orchestration on top of a :class:`VersionStore`."""

    def __init__(self, store: VersionStore, hooks: Optional[HookRegistry] = None):
        self.store = store
        self.hooks = hooks if hooks is not None else registry

    def upsert(self, rec_id: int, effective_ts: int, delta: Delta) -> Record:
        """Create `rec_id` from `delta` if it has no versions, else update it.

        On create, deletion markers in `delta` are dropped. Store errors
        propagate unchanged; hooks only run after a successful write.
        """
        try:
            self.store.latest(rec_id)
        except RecordNotFoundError:
            logger.debug("record %s not found, creating it", rec_id)
            record = self.store.create(rec_id, initial_attributes(delta), effective_ts)
            self.hooks.emit("create", record)
            return record

        record = self.store.apply_update(rec_id, effective_ts, delta)
        self.hooks.emit("update", record)
        return record

    # ---- reads ----------------------------------------------------------

    def latest(self, rec_id: int) -> Record:
        return self.store.latest(rec_id)

    def as_of(self, rec_id: int, effective_ts: int) -> Record:
        return self.store.as_of(rec_id, effective_ts)

    def versions(self, rec_id: int) -> List[Record]:
        return self.store.versions(rec_id)

    def version(self, rec_id: int, number: int) -> Record:
        return self.store.version(rec_id, number)
