import os

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    pass


def _build_engine_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite:///./advisory.db")


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str):
    connect_args = {"check_same_thread": False} if _is_sqlite(url) else {}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


DATABASE_URL = _build_engine_url()
engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(bind=None) -> None:
    # models must be imported so their tables are registered on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
