import pathlib
import sys

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db_engine import init_db, set_engine  # noqa: E402


@pytest.fixture
def db():
    """Point the repositories at a fresh in-memory SQLite database."""

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    previous = set_engine(engine)
    try:
        yield engine
    finally:
        set_engine(previous)
        engine.dispose()
