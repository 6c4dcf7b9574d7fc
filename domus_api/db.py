from typing import Callable

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from .settings import settings

SessionFactory = Callable[[], Session]

_engine: Engine | None = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(settings.database_url, pool_pre_ping=True)
    return _engine


def init_db(engine: Engine | None = None):
    SQLModel.metadata.create_all(engine or get_engine())


def session_factory(engine: Engine) -> SessionFactory:
    # expire_on_commit=False keeps simple reads after commit safe
    return lambda: Session(engine, expire_on_commit=False)
