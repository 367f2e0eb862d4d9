"""
Write path of the version store.

INVARIANTS:
- every write inserts exactly one row
- a retroactive write is cascaded into every later row
- rows before the write are never touched
- a failed write leaves the chain exactly as it was
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from timetravel import (
    DuplicateTimestampError,
    EmptyUpdateError,
    InvalidAttributesError,
    InvalidIdError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
    StorageFailureError,
    VersionStore,
    init_timetravel,
    make_engine,
)
from timetravel.persistence.models import RecordRow, RecordVersionRow


def row_count(engine, model):
    with engine.connect() as conn:
        return conn.scalar(select(func.count()).select_from(model))


class TestCreate:
    def test_create_returns_version_one(self, store, clock):
        clock.now = 555
        record = store.create(1, {"hello": "world"}, 100)

        assert record.version == 1
        assert record.effective_timestamp == 100
        assert record.reported_timestamp == 555
        assert record.attributes == {"hello": "world"}
        assert store.latest(1) == record

    def test_create_writes_identity_and_first_version(self, store, engine):
        store.create(1, {}, 100)

        assert row_count(engine, RecordRow) == 1
        assert row_count(engine, RecordVersionRow) == 1

    @pytest.mark.parametrize("rec_id", [0, -5])
    def test_non_positive_id(self, store, rec_id):
        with pytest.raises(InvalidIdError):
            store.create(rec_id, {"a": "b"}, 100)

    def test_existing_id(self, store):
        store.create(1, {"a": "b"}, 100)

        with pytest.raises(RecordAlreadyExistsError):
            store.create(1, {"a": "c"}, 300)
        assert store.versions(1)[0].attributes == {"a": "b"}

    def test_non_string_values(self, store):
        with pytest.raises(InvalidAttributesError):
            store.create(1, {"a": 1}, 100)
        assert not store.exists(1)


class TestApplyUpdate:
    def test_current_update(self, store, clock):
        store.create(1, {"hello": "world"}, 100)
        clock.now = 20_000
        record = store.apply_update(1, 200, {"status": "ok"})

        assert record.version == 2
        assert record.reported_timestamp == 20_000
        assert record.attributes == {"hello": "world", "status": "ok"}

    def test_retroactive_update_cascades(self, chain):
        """t=150 correction is folded into the t=200 version."""
        by_ts = {v.effective_timestamp: v for v in chain.versions(1)}

        assert by_ts[100].attributes == {"hello": "world"}
        assert by_ts[150].attributes == {"hello": "world2"}
        assert by_ts[200].attributes == {"hello": "world2", "status": "ok"}
        assert by_ts[150].version == 2
        assert by_ts[200].version == 3

    def test_update_before_first_version_starts_empty(self, store):
        store.create(1, {"a": "1"}, 100)
        store.apply_update(1, 300, {"c": "3"})

        record = store.apply_update(1, 50, {"b": "2"})

        assert record.version == 1
        assert record.attributes == {"b": "2"}
        assert [v.attributes for v in store.versions(1)] == [
            {"b": "2"},
            {"a": "1", "b": "2"},
            {"a": "1", "b": "2", "c": "3"},
        ]

    def test_later_edits_survive_cascade(self, store):
        store.create(1, {"hours": "9-5", "phone": "111"}, 100)
        store.apply_update(1, 300, {"phone": "222"})
        store.apply_update(1, 400, {"owner": "kim"})

        store.apply_update(1, 200, {"hours": "8-6"})

        history = [v.attributes for v in store.versions(1)]
        assert history == [
            {"hours": "9-5", "phone": "111"},
            {"hours": "8-6", "phone": "111"},
            {"hours": "8-6", "phone": "222"},
            {"hours": "8-6", "phone": "222", "owner": "kim"},
        ]

    def test_ranks_shift_by_one_after_retroactive_insert(self, store):
        store.create(1, {"a": "1"}, 100)
        store.apply_update(1, 200, {"a": "2"})
        store.apply_update(1, 300, {"a": "3"})
        before = {v.effective_timestamp: v.version for v in store.versions(1)}

        store.apply_update(1, 150, {"b": "x"})

        after = {v.effective_timestamp: v.version for v in store.versions(1)}
        assert after[100] == before[100]
        assert after[200] == before[200] + 1
        assert after[300] == before[300] + 1
        assert after[150] == 2

    def test_earlier_versions_untouched(self, store):
        store.create(1, {"a": "1"}, 100)
        store.apply_update(1, 300, {"a": "3"})
        first = store.version(1, 1)

        store.apply_update(1, 200, {"a": "2"})

        assert store.version(1, 1) == first

    def test_unknown_record(self, store):
        with pytest.raises(RecordNotFoundError):
            store.apply_update(9, 100, {"a": "b"})

    def test_empty_delta(self, store):
        store.create(1, {"a": "b"}, 100)

        with pytest.raises(EmptyUpdateError):
            store.apply_update(1, 200, {})
        assert len(store.versions(1)) == 1

    def test_non_string_values(self, store):
        store.create(1, {"a": "b"}, 100)

        with pytest.raises(InvalidAttributesError):
            store.apply_update(1, 200, {"a": 2})


class TestDeletion:
    def test_null_removes_only_that_key(self, store):
        store.create(1, {"k": "v", "other": "keep"}, 100)

        record = store.apply_update(1, 200, {"k": None})

        assert record.attributes == {"other": "keep"}
        assert store.version(1, 1).attributes == {"k": "v", "other": "keep"}

    def test_deleting_absent_key_is_a_no_op(self, store):
        store.create(1, {"a": "b"}, 100)

        record = store.apply_update(1, 200, {"missing": None})

        assert record.version == 2
        assert record.attributes == {"a": "b"}

    def test_retroactive_delete_cascades(self, store):
        store.create(1, {"k": "v"}, 100)
        store.apply_update(1, 300, {"x": "y"})

        store.apply_update(1, 200, {"k": None})

        assert store.latest(1).attributes == {"x": "y"}


class TestDuplicateTimestamp:
    def test_collision_is_rejected(self, chain, engine):
        before = chain.versions(1)

        with pytest.raises(DuplicateTimestampError):
            chain.apply_update(1, 150, {"hello": "again"})
        assert chain.versions(1) == before
        assert row_count(engine, RecordVersionRow) == 3

    def test_collision_with_creation_time(self, store):
        store.create(1, {"a": "b"}, 100)

        with pytest.raises(DuplicateTimestampError):
            store.apply_update(1, 100, {"a": "c"})


class TestAtomicity:
    def test_failed_cascade_rolls_back_insert(self, chain, engine, monkeypatch):
        before = chain.versions(1)

        def boom(self, s, rec_id, effective_ts, delta):
            raise OperationalError("UPDATE record_versions", {}, Exception("disk I/O error"))

        monkeypatch.setattr(VersionStore, "_cascade", boom)

        with pytest.raises(StorageFailureError):
            chain.apply_update(1, 120, {"hello": "lost"})

        monkeypatch.undo()
        assert chain.versions(1) == before
        assert row_count(engine, RecordVersionRow) == 3

    def test_malformed_later_row_aborts_whole_update(self, store, engine):
        store.create(1, {"a": "1"}, 100)
        store.apply_update(1, 300, {"a": "3"})
        with engine.begin() as conn:
            conn.execute(
                RecordVersionRow.__table__.update()
                .where(RecordVersionRow.effective_ts == 300)
                .values(attributes=["not", "a", "map"])
            )

        with pytest.raises(StorageFailureError):
            store.apply_update(1, 200, {"a": "2"})

        assert row_count(engine, RecordVersionRow) == 2
        assert store.version(1, 1).attributes == {"a": "1"}


class GatedClock:
    """Clock that parks the writer between its base read and its insert."""

    def __init__(self, now: int):
        self.now = now
        self.reached = threading.Event()
        self.release = threading.Event()

    def __call__(self) -> int:
        self.reached.set()
        assert self.release.wait(10), "writer was never released"
        return self.now


class TestConcurrency:
    """
    Same-record writers must queue behind each other on a real database
    file; separate connections, not the shared in-memory one.
    """

    @pytest.fixture
    def file_engine(self, tmp_path):
        eng = make_engine(f"sqlite:///{tmp_path / 'records.db'}")
        init_timetravel(eng)
        yield eng
        eng.dispose()

    def test_correction_waits_for_in_flight_update(self, file_engine):
        setup = VersionStore(file_engine, clock=lambda: 1_000)
        setup.create(1, {"a": "1"}, 100)
        setup.apply_update(1, 200, {"s": "x"})

        gate = GatedClock(2_000)
        slow = VersionStore(file_engine, clock=gate)
        fast = VersionStore(file_engine, clock=lambda: 3_000)

        with ThreadPoolExecutor(max_workers=2) as pool:
            late = pool.submit(slow.apply_update, 1, 300, {"b": "y"})
            assert gate.reached.wait(10)

            correction = pool.submit(fast.apply_update, 1, 150, {"a": "2"})
            time.sleep(0.3)
            assert not correction.done(), "second writer did not wait"
            # readers are not blocked by the pending write
            assert setup.latest(1).effective_timestamp == 200

            gate.release.set()
            late.result(timeout=10)
            correction.result(timeout=10)

        assert [(v.effective_timestamp, v.attributes) for v in setup.versions(1)] == [
            (100, {"a": "1"}),
            (150, {"a": "2"}),
            (200, {"a": "2", "s": "x"}),
            (300, {"a": "2", "s": "x", "b": "y"}),
        ]
        assert setup.latest(1).attributes["a"] == "2"
