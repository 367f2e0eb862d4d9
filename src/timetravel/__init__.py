"""
Public surface for timetravel.
Importing this module does **not** touch the database; call
`timetravel.init_timetravel(engine)` or `TimeTravel.create_app(...)` during
application start-up.
"""

from .bootstrap import init_timetravel, make_engine
from .core.errors import (
    DuplicateTimestampError,
    EmptyUpdateError,
    InvalidAttributesError,
    InvalidIdError,
    InvalidVersionError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
    StorageFailureError,
    TimeTravelError,
)
from .core.record import Record, RecordV1
from .events import HookRegistry, on
from .persistence.store import VersionStore
from .runtime import TimeTravel
from .service import RecordService

__all__ = [
    "DuplicateTimestampError",
    "EmptyUpdateError",
    "HookRegistry",
    "InvalidAttributesError",
    "InvalidIdError",
    "InvalidVersionError",
    "Record",
    "RecordAlreadyExistsError",
    "RecordNotFoundError",
    "RecordService",
    "RecordV1",
    "StorageFailureError",
    "TimeTravel",
    "TimeTravelError",
    "VersionStore",
    "init_timetravel",
    "make_engine",
    "on",
]
