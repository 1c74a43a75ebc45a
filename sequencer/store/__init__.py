"""
Store module for Sequencer - persisted sequence state.

This module handles:
- Document-scoped key-value storage (in-memory and SQLite)
- Sequence CRUD and the selected-sequence pointer
- Versioned schema migration of persisted records

Invariants:
    - The full sequence collection is rewritten on every mutation
    - Migration is idempotent at the current version
    - Corrupt persisted data is recovered as an empty collection

How to change safely:
    - Add migration steps instead of editing existing ones
    - Keep persisted keys camelCase for older documents
"""

from .kv import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore
from .layout import (
    CURRENT_VERSION,
    LEGACY_VALUE_KEY,
    MIGRATION_KEY,
    SELECTED_KEY,
    SEQUENCES_KEY,
)
from .migrations import MigrationReport, generate_id, migrate, upgrade_record
from .sequence_store import SequenceStore

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SqliteKeyValueStore",
    "SequenceStore",
    "MigrationReport",
    "migrate",
    "upgrade_record",
    "generate_id",
    "CURRENT_VERSION",
    "SEQUENCES_KEY",
    "SELECTED_KEY",
    "MIGRATION_KEY",
    "LEGACY_VALUE_KEY",
]
