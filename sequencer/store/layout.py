"""
Persisted layout of Sequencer state in the document key-value store.

Keys:
    sequences:          JSON array of sequence records
    selectedSequence:   id of the selected sequence ("" for none)
    migrationVersion:   decimal schema version of the records
    lastInvoiceNumber:  legacy single-counter value (read-only, kept for rollback)

Invariants:
    - The sequences array is always written whole, never patched
    - Records are serialized with sorted keys so identical state is byte-identical
"""

from __future__ import annotations

import json
from typing import Any

from ..errors import MigrationParseFailure
from .kv import KeyValueStore

SEQUENCES_KEY = "sequences"
SELECTED_KEY = "selectedSequence"
MIGRATION_KEY = "migrationVersion"
LEGACY_VALUE_KEY = "lastInvoiceNumber"

CURRENT_VERSION = 2


def load_records(kv: KeyValueStore) -> list[dict[str, Any]]:
    """Read raw sequence records.

    Raises:
        MigrationParseFailure: If the stored JSON is corrupt or not an array
    """
    raw = kv.get(SEQUENCES_KEY)
    if not raw:
        return []

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MigrationParseFailure(f"Corrupt sequence data: {e}", key=SEQUENCES_KEY) from e

    if not isinstance(data, list):
        raise MigrationParseFailure(
            f"Sequence data must be an array, got {type(data).__name__}",
            key=SEQUENCES_KEY,
        )
    return [record for record in data if isinstance(record, dict)]


def dump_records(kv: KeyValueStore, records: list[dict[str, Any]]) -> None:
    """Write the full record collection."""
    kv.set(SEQUENCES_KEY, json.dumps(records, sort_keys=True))


def read_version(kv: KeyValueStore) -> int:
    """Persisted schema version (0 when unset or unreadable)."""
    raw = kv.get(MIGRATION_KEY).strip()
    try:
        return int(raw) if raw else 0
    except ValueError:
        return 0
