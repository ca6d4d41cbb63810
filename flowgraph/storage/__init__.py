"""Database models and storage layer."""

from .database import Base, get_db, get_session, create_tables, drop_tables, get_database_engine, reset_database_engine
from .models import WorkflowRecord

__all__ = [
    "Base",
    "get_db",
    "get_session",
    "create_tables",
    "drop_tables",
    "get_database_engine",
    "reset_database_engine",
    "WorkflowRecord",
]
