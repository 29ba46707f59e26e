"""Database engine and session dependency.

DATABASE_URL selects the backend (SQLite file by default, Postgres in
deployment). SQL_ECHO=true logs every statement.
"""
import os
from pathlib import Path
from typing import Any, Dict, Generator

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/badman.db")


def build_engine(url: str) -> Engine:
    options: Dict[str, Any] = {
        "echo": os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes"),
    }
    if url.startswith("sqlite"):
        # Celery workers and the TestClient touch the connection from other threads
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" not in url:
            Path(url.split("///", 1)[-1]).parent.mkdir(parents=True, exist_ok=True)
    else:
        options["pool_pre_ping"] = True
    return create_engine(url, **options)


engine: Engine = build_engine(DATABASE_URL)


def get_session() -> Generator[Session, None, None]:
    """One session per request."""
    with Session(engine) as session:
        yield session


def init_db() -> None:
    """Create missing tables. Alembic owns schema changes after the first run."""
    import badman.models  # noqa: F401  registers every table

    SQLModel.metadata.create_all(engine)
