"""Database accessor: models, sessions and keyed record operations."""

from pipeline.db.session import get_db_session, init_db, close_db

__all__ = ["get_db_session", "init_db", "close_db"]
