"""
Single entry-point that wires SQLAlchemy into timetravel.
Call once, e.g. in FastAPI startup or a CLI.
"""

from typing import Callable, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from .events import HookRegistry
from .persistence.models import Base, now_unix
from .persistence.store import SQLITE_BEGIN, VersionStore
from .service import RecordService


def _sqlite_transactions(engine: Engine) -> Engine:
    """
    Let SQLAlchemy emit BEGIN instead of pysqlite, which only begins a
    transaction at the first INSERT/UPDATE. Write sessions ask for
    ``BEGIN IMMEDIATE`` so same-record writers queue on the database write
    lock before their first read; readers stay deferred.
    """

    @event.listens_for(engine, "connect")
    def _no_driver_begin(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        mode = conn.get_execution_options().get(SQLITE_BEGIN, "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")

    return engine


def make_engine(database_url: str) -> Engine:
    """Engine for `database_url`; in-memory SQLite shares one connection."""
    if make_url(database_url).get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            database_url, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        engine = create_engine(
            database_url, connect_args=connect_args, pool_pre_ping=True
        )
    return _sqlite_transactions(engine)


def init_timetravel(
    engine: Engine,
    *,
    clock: Callable[[], int] = now_unix,
    hooks: Optional[HookRegistry] = None,
) -> RecordService:
    """
    Create the schema if missing and return a RecordService bound to
    `engine`.
    """
    Base.metadata.create_all(engine)  # ← this line creates the tables
    return RecordService(VersionStore(engine, clock=clock), hooks=hooks)
