"""Persistent storage: SQLite database, uploaded documents and OS keychain."""

from storage.database import Database, get_data_dir, get_db
from storage.keychain import KeychainManager, get_keychain

__all__ = [
    "Database",
    "get_data_dir",
    "get_db",
    "KeychainManager",
    "get_keychain",
]
