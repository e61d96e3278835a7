from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from wiki_api.core.config import get_settings


def _engine_options(url: str) -> dict[str, Any]:
    if make_url(url).get_backend_name() == "sqlite":
        # TestClient and the sync-handler threadpool share one connection pool.
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_recycle": get_settings().DB_POOL_RECYCLE_SECONDS,
    }


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    url = get_settings().DATABASE_URL
    return create_engine(url, **_engine_options(url))


@lru_cache(maxsize=1)
def get_sessionmaker() -> sessionmaker[Session]:
    return sessionmaker(
        bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False
    )


def get_session() -> Iterator[Session]:
    """One session per request. Handlers commit; anything else is rolled back."""
    session = get_sessionmaker()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
