"""Relational store for scan runs, canonical files and the change log.

This module provides the SQLite connection layer, the hierarchical
path key used for subtree queries, and the ScanStore repository.
"""

from fsdelta.store.database import (
    ConnectionStringError,
    StoreError,
    connect,
    initialize_schema,
    mask_database_url,
    parse_database_url,
    transaction,
)
from fsdelta.store.hierarchy import is_under, path_key, subtree_bounds, subtree_key
from fsdelta.store.repository import ScanStore

__all__ = [
    "ConnectionStringError",
    "ScanStore",
    "StoreError",
    "connect",
    "initialize_schema",
    "is_under",
    "mask_database_url",
    "parse_database_url",
    "path_key",
    "subtree_bounds",
    "subtree_key",
    "transaction",
]
