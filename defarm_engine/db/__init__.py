"""SQL persistence for DeFarm."""

from .base import Base, create_db_engine, get_engine, get_session_local, init_database

__all__ = ["Base", "create_db_engine", "get_engine", "get_session_local", "init_database"]
