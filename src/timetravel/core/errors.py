"""
Error taxonomy raised by the versioning engine.

Everything except :class:`StorageFailureError` is an expected condition the
caller can act on; the HTTP layer maps each class to a status code.
"""


class TimeTravelError(Exception):
    """Base class for every error raised by timetravel."""


class InvalidIdError(TimeTravelError):
    def __init__(self, rec_id: int):
        super().__init__(f"invalid id {rec_id}; id must be a positive number")
        self.rec_id = rec_id


class RecordAlreadyExistsError(TimeTravelError):
    def __init__(self, rec_id: int):
        super().__init__(f"record {rec_id} already exists")
        self.rec_id = rec_id


class RecordNotFoundError(TimeTravelError):
    def __init__(self, rec_id: int, detail: str = ""):
        msg = f"record {rec_id} not found"
        super().__init__(f"{msg} ({detail})" if detail else msg)
        self.rec_id = rec_id


class InvalidVersionError(TimeTravelError):
    def __init__(self, version: int):
        super().__init__(f"version must be greater than 0, got {version}")
        self.version = version


class DuplicateTimestampError(TimeTravelError):
    def __init__(self, rec_id: int, effective_ts: int):
        super().__init__(
            f"record {rec_id} already has a version at effective time {effective_ts}"
        )
        self.rec_id = rec_id
        self.effective_ts = effective_ts


class EmptyUpdateError(TimeTravelError):
    def __init__(self, rec_id: int):
        super().__init__(f"update to record {rec_id} must change at least one key")
        self.rec_id = rec_id


class InvalidAttributesError(TimeTravelError):
    """Payload is not a mapping of string keys to string (or null) values."""


class StorageFailureError(TimeTravelError):
    """Underlying database error; the transaction has been rolled back."""
