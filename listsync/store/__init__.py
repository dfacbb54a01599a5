"""Durable local storage for a client's entry list.

The synchronizer only relies on the EntryStore interface (load/save);
LocalStore is the SQLite-backed implementation used by the CLI.
"""

from .base import EntryStore
from .local_store import LocalStore

__all__ = ["EntryStore", "LocalStore"]
