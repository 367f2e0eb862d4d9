"""
timetravel.runtime  ──  A thin façade that owns the process-wide engine
and service.

Usage pattern in user code
--------------------------
    from timetravel.runtime import TimeTravel

    app = TimeTravel.create_app("timetravel", db_url="sqlite:///timetravel.db")

    service = TimeTravel.instance().service
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

from fastapi import FastAPI
from sqlalchemy.engine import Engine

from .api import build_app
from .bootstrap import init_timetravel, make_engine
from .service import RecordService


class TimeTravel:
    """
    We keep a private singleton instance so the engine and service are
    built once per process, no matter how many modules ask for them.
    """

    _singleton: ClassVar[Optional["TimeTravel"]] = None

    def __init__(self, name: str, engine: Engine, service: RecordService):
        self.name = name
        self.engine = engine
        self.service = service

    # ---------- one-shot initialiser ----------
    @classmethod
    def init(cls, *, name: str, database_url: str) -> "TimeTravel":
        if cls._singleton is None:
            engine = make_engine(database_url)
            cls._singleton = cls(name, engine, init_timetravel(engine))
        return cls._singleton

    # ---------- convenience helpers ----------
    @classmethod
    def instance(cls) -> "TimeTravel":
        if cls._singleton is None:
            raise RuntimeError("TimeTravel.init() has not been called")
        return cls._singleton

    @classmethod
    def reset(cls) -> None:
        """Dispose the engine and forget the singleton."""
        if cls._singleton is not None:
            cls._singleton.engine.dispose()
        cls._singleton = None

    @classmethod
    def create_app(
        cls,
        name: str,
        *,
        db_url: str,
        **fastapi_kwargs: Any,
    ) -> FastAPI:
        """
        One-liner for web apps:
            app = TimeTravel.create_app("svc-name", db_url=URL)
        """
        runtime = cls.init(name=name, database_url=db_url)
        fastapi_kwargs.setdefault("title", name)
        return build_app(runtime.service, **fastapi_kwargs)
