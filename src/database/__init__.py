"""
Database Layer

Storage for the SQL-backed persistent cache tier.

Usage:
    from src.database import create_db_engine, create_session_factory, init_db

    engine = create_db_engine()
    init_db(engine)
    factory = create_session_factory(engine)
"""

from .models import Base, CacheSnapshot
from .session import (
    get_database_url,
    create_db_engine,
    create_session_factory,
    session_scope,
    init_db,
    check_db_connection,
)

__all__ = [
    "Base",
    "CacheSnapshot",
    "get_database_url",
    "create_db_engine",
    "create_session_factory",
    "session_scope",
    "init_db",
    "check_db_connection",
]
