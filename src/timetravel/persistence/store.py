"""
Data-access layer around the `records` / `record_versions` tables.

Every public write runs in exactly one transaction: the new version row and
the cascade over later rows commit together or not at all.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Mapping, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.attributes import (
    Attributes,
    Delta,
    apply_delta,
    validate_attributes,
    validate_delta,
)
from ..core.errors import (
    DuplicateTimestampError,
    EmptyUpdateError,
    InvalidAttributesError,
    InvalidIdError,
    InvalidVersionError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
    StorageFailureError,
)
from ..core.record import Record
from .models import RecordRow, RecordVersionRow, now_unix

logger = logging.getLogger(__name__)

V = RecordVersionRow
_COLUMNS = (V.effective_ts, V.reported_ts, V.attributes)

# Read by the SQLite engine hooks in bootstrap.make_engine: writers take the
# database write lock when their transaction begins.
SQLITE_BEGIN = "sqlite_begin"
WRITE_OPTIONS = {SQLITE_BEGIN: "IMMEDIATE"}


class VersionStore:
    """Reads and writes the version chain of each record.

    The version number of a row is never stored: it is the row's 1-based
    rank by ``effective_ts`` and is recomputed on every read.
    """

    def __init__(self, engine: Engine, clock: Callable[[], int] = now_unix):
        self.engine = engine
        self.clock = clock

    def _new_session(self) -> Session:
        return Session(bind=self.engine)

    @contextmanager
    def _session(self, *, write: bool = False) -> Iterator[Session]:
        """Yield a session; ``write=True`` wraps it in a single transaction.

        Driver errors surface as StorageFailureError after rollback.
        """
        try:
            with self._new_session() as s:
                if write:
                    with s.begin():
                        s.connection(execution_options=WRITE_OPTIONS)
                        yield s
                else:
                    yield s
        except SQLAlchemyError as exc:
            logger.exception("storage failure, transaction rolled back")
            raise StorageFailureError("storage failure") from exc

    # ---- helpers --------------------------------------------------------

    @staticmethod
    def _rank(s: Session, rec_id: int, effective_ts: int) -> int:
        earlier = s.scalar(
            select(func.count())
            .select_from(V)
            .where(V.record_id == rec_id, V.effective_ts < effective_ts)
        )
        return int(earlier or 0) + 1

    @staticmethod
    def _count(s: Session, rec_id: int, *where: Any) -> int:
        q = select(func.count()).select_from(V).where(V.record_id == rec_id, *where)
        return int(s.scalar(q) or 0)

    @staticmethod
    def _stored(rec_id: int, raw: Any) -> Attributes:
        try:
            return validate_attributes(raw)
        except InvalidAttributesError as exc:
            raise StorageFailureError(
                f"record {rec_id} has a malformed attribute payload"
            ) from exc

    def _to_record(self, rec_id: int, row: Row, version: int) -> Record:
        return Record(
            id=rec_id,
            version=version,
            effective_timestamp=row.effective_ts,
            reported_timestamp=row.reported_ts,
            attributes=self._stored(rec_id, row.attributes),
        )

    # ---- reads ----------------------------------------------------------

    def exists(self, rec_id: int) -> bool:
        with self._session() as s:
            return self._count(s, rec_id) > 0

    def latest(self, rec_id: int) -> Record:
        """Version with the greatest effective time."""
        q = (
            select(*_COLUMNS)
            .where(V.record_id == rec_id)
            .order_by(V.effective_ts.desc())
            .limit(1)
        )
        with self._session() as s:
            row = s.execute(q).first()
            if row is None:
                raise RecordNotFoundError(rec_id)
            logger.debug("read latest of record %s at %s", rec_id, row.effective_ts)
            return self._to_record(rec_id, row, self._rank(s, rec_id, row.effective_ts))

    def as_of(self, rec_id: int, effective_ts: int) -> Record:
        """State in force just before `effective_ts` (strictly earlier row)."""
        q = (
            select(*_COLUMNS)
            .where(V.record_id == rec_id, V.effective_ts < effective_ts)
            .order_by(V.effective_ts.desc())
            .limit(1)
        )
        with self._session() as s:
            row = s.execute(q).first()
            if row is None:
                raise RecordNotFoundError(rec_id, f"no version before {effective_ts}")
            return self._to_record(rec_id, row, self._rank(s, rec_id, row.effective_ts))

    def stream(self, rec_id: int) -> Iterator[Record]:
        """Yield versions *oldest→newest* with their ranks (empty if unknown)."""
        q = select(*_COLUMNS).where(V.record_id == rec_id).order_by(V.effective_ts)
        with self._session() as s:
            for rank, row in enumerate(s.execute(q), start=1):
                yield self._to_record(rec_id, row, rank)

    def versions(self, rec_id: int) -> List[Record]:
        out = list(self.stream(rec_id))
        if not out:
            raise RecordNotFoundError(rec_id)
        return out

    def version(self, rec_id: int, number: int) -> Record:
        """Version at rank `number` (1-based)."""
        if number < 1:
            raise InvalidVersionError(number)
        q = (
            select(*_COLUMNS)
            .where(V.record_id == rec_id)
            .order_by(V.effective_ts)
            .offset(number - 1)
            .limit(1)
        )
        with self._session() as s:
            row = s.execute(q).first()
            if row is None:
                raise RecordNotFoundError(rec_id, f"no version {number}")
            return self._to_record(rec_id, row, number)

    # ---- writes ---------------------------------------------------------

    def create(
        self, rec_id: int, attributes: Mapping[str, str], effective_ts: int
    ) -> Record:
        """Insert the identity row and version 1 of a new record."""
        if rec_id <= 0:
            raise InvalidIdError(rec_id)
        attributes = validate_attributes(attributes)

        with self._session(write=True) as s:
            if self._count(s, rec_id):
                logger.warning("record %s already exists", rec_id)
                raise RecordAlreadyExistsError(rec_id)
            reported_ts = self.clock()
            try:
                s.execute(insert(RecordRow).values(id=rec_id, created_ts=reported_ts))
            except IntegrityError as exc:
                raise RecordAlreadyExistsError(rec_id) from exc
            s.execute(
                insert(V).values(
                    record_id=rec_id,
                    effective_ts=effective_ts,
                    reported_ts=reported_ts,
                    attributes=attributes,
                )
            )

        logger.info("created record %s effective at %s", rec_id, effective_ts)
        return Record(
            id=rec_id,
            version=1,
            effective_timestamp=effective_ts,
            reported_timestamp=reported_ts,
            attributes=attributes,
        )

    def apply_update(self, rec_id: int, effective_ts: int, delta: Delta) -> Record:
        """Insert a version at `effective_ts` and cascade `delta` forward.

        The new row starts from the version in force just before
        `effective_ts`. Every row with a later effective time gets the same
        `delta` applied on top of its stored attributes.
        """
        delta = validate_delta(delta)
        if not delta:
            raise EmptyUpdateError(rec_id)

        with self._session(write=True) as s:
            locked = s.execute(
                select(RecordRow.id).where(RecordRow.id == rec_id).with_for_update()
            ).first()
            if locked is None or not self._count(s, rec_id):
                raise RecordNotFoundError(rec_id)
            if self._count(s, rec_id, V.effective_ts == effective_ts):
                logger.warning(
                    "record %s already has a version at %s", rec_id, effective_ts
                )
                raise DuplicateTimestampError(rec_id, effective_ts)

            base: Optional[Any] = s.scalar(
                select(V.attributes)
                .where(V.record_id == rec_id, V.effective_ts < effective_ts)
                .order_by(V.effective_ts.desc())
                .limit(1)
            )
            attributes = apply_delta(
                self._stored(rec_id, base) if base is not None else {}, delta
            )
            reported_ts = self.clock()
            try:
                s.execute(
                    insert(V).values(
                        record_id=rec_id,
                        effective_ts=effective_ts,
                        reported_ts=reported_ts,
                        attributes=attributes,
                    )
                )
            except IntegrityError as exc:
                raise DuplicateTimestampError(rec_id, effective_ts) from exc

            cascaded = self._cascade(s, rec_id, effective_ts, delta)
            version = self._rank(s, rec_id, effective_ts)

        logger.info(
            "updated record %s at %s (version %s, %s later version(s) rewritten)",
            rec_id,
            effective_ts,
            version,
            cascaded,
        )
        return Record(
            id=rec_id,
            version=version,
            effective_timestamp=effective_ts,
            reported_timestamp=reported_ts,
            attributes=attributes,
        )

    def _cascade(
        self, s: Session, rec_id: int, effective_ts: int, delta: Delta
    ) -> int:
        later = s.execute(
            select(V.version_id, V.attributes)
            .where(V.record_id == rec_id, V.effective_ts > effective_ts)
            .order_by(V.effective_ts)
        ).all()
        for version_id, stored in later:
            s.execute(
                update(V)
                .where(V.version_id == version_id)
                .values(attributes=apply_delta(self._stored(rec_id, stored), delta))
            )
        return len(later)
