from __future__ import annotations

import os
from functools import lru_cache

import sqlalchemy as sa

_LEGACY_SCHEME = "postgres://"


def get_database_url() -> str:
    """Return DATABASE_URL, accepting the legacy ``postgres://`` scheme."""
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set; backup logs need a database.")
    if database_url.startswith(_LEGACY_SCHEME):
        database_url = "postgresql://" + database_url[len(_LEGACY_SCHEME) :]
    return database_url


@lru_cache(maxsize=1)
def get_engine() -> sa.Engine:
    """Return the process-wide engine for DATABASE_URL."""
    url = get_database_url()
    return sa.create_engine(url, future=True, pool_pre_ping=not url.startswith("sqlite"))
