from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import database as db  # noqa: E402
from database import Base  # noqa: E402


@pytest.fixture()
def memory_db(monkeypatch):
    """In-memory engine patched into the database module so helpers and the API share it."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    monkeypatch.setattr(db, "schedule_engine", engine)
    monkeypatch.setattr(db, "SessionLocal", Session)
    Base.metadata.create_all(engine)
    yield Session
    engine.dispose()


@pytest.fixture()
def session(memory_db):
    with memory_db() as session:
        yield session
