"""
Schema migration pipeline for persisted sequences.

Persisted state has gone through three formats:
- v0: one global counter under the legacy key, no sequence objects
- v1: array of {id, name, prefix, value, type}
- v2: array of {id, name, prefix, type, nextValue, highestUsed, mode,
      locked, createdAt}

Each step is an explicit upgrade keyed by the version it starts from.
migrate() runs the steps between the persisted version and
CURRENT_VERSION, rewrites the collection once, then advances the marker.

Invariants:
    - Running migrate() at the current version is a no-op
    - upgrade_record() is pure and leaves v2 fields that are already set
    - The legacy key is never deleted
    - Corrupt JSON is never overwritten by an empty collection

How to change safely:
    - Add a new step for version N -> N+1 and bump CURRENT_VERSION
    - Never edit an existing step; old documents still run it
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..errors import MigrationParseFailure
from .kv import KeyValueStore
from .layout import (
    CURRENT_VERSION,
    LEGACY_VALUE_KEY,
    MIGRATION_KEY,
    SELECTED_KEY,
    dump_records,
    load_records,
    read_version,
)

logger = logging.getLogger(__name__)

LEGACY_SEQUENCE_NAME = "Invoice#"


def generate_id() -> str:
    """Generate a unique sequence id."""
    return f"seq_{int(time.time() * 1000):x}{secrets.token_hex(3)}"


@dataclass
class MigrationContext:
    """Inputs shared by migration steps.

    Attributes:
        kv: Document key-value store
        now_ms: Timestamp stamped into upgraded records
        id_factory: Generates ids for sequences created by a step
    """

    kv: KeyValueStore
    now_ms: int
    id_factory: Callable[[], str] = generate_id


@dataclass
class MigrationReport:
    """Outcome of a migrate() call.

    Attributes:
        from_version: Version found in the store
        to_version: Version after migration
        upgraded: Number of records rewritten by the v1 -> v2 step
        legacy_imported: Whether the legacy counter became a sequence
        parse_failed: Whether the stored collection was unreadable
    """

    from_version: int
    to_version: int
    upgraded: int = 0
    legacy_imported: bool = False
    parse_failed: bool = False

    @property
    def changed(self) -> bool:
        return self.from_version != self.to_version


def upgrade_record(record: dict[str, Any], now_ms: int) -> dict[str, Any]:
    """Upgrade a v1 record to v2.

    Fields already present are kept; missing ones are filled in:
    value -> nextValue, mode=compliance, highestUsed=<prior value>,
    locked=False, createdAt=now.
    """
    upgraded = dict(record)
    prior = upgraded.pop("value", None)

    if "nextValue" not in upgraded:
        upgraded["nextValue"] = str(prior).strip() if prior is not None else ""
    upgraded.setdefault("mode", "compliance")
    upgraded.setdefault("highestUsed", upgraded["nextValue"])
    upgraded.setdefault("locked", False)
    upgraded.setdefault("createdAt", now_ms)
    upgraded.setdefault("prefix", "")
    upgraded.setdefault("type", "number")
    return upgraded


def _needs_upgrade(record: dict[str, Any]) -> bool:
    required = ("nextValue", "mode", "highestUsed", "locked", "createdAt")
    return "value" in record or any(k not in record for k in required)


def _migrate_v0_to_v1(
    records: list[dict[str, Any]],
    ctx: MigrationContext,
    report: MigrationReport,
) -> list[dict[str, Any]]:
    """Import the legacy single counter as a default sequence."""
    legacy_value = ctx.kv.get(LEGACY_VALUE_KEY).strip()
    if not legacy_value or records:
        return records

    default_sequence = {
        "id": ctx.id_factory(),
        "name": LEGACY_SEQUENCE_NAME,
        "prefix": "",
        "value": legacy_value,
        "type": "number",
    }
    ctx.kv.set(SELECTED_KEY, default_sequence["id"])
    report.legacy_imported = True

    logger.info(
        "Imported legacy counter",
        extra={"sequence_id": default_sequence["id"], "value": legacy_value},
    )
    return [default_sequence]


def _migrate_v1_to_v2(
    records: list[dict[str, Any]],
    ctx: MigrationContext,
    report: MigrationReport,
) -> list[dict[str, Any]]:
    """Rename value -> nextValue and add governance fields."""
    result = []
    for record in records:
        if _needs_upgrade(record):
            record = upgrade_record(record, ctx.now_ms)
            report.upgraded += 1
        result.append(record)
    return result


MigrationStep = Callable[
    [list[dict[str, Any]], MigrationContext, MigrationReport], list[dict[str, Any]]
]

MIGRATIONS: dict[int, MigrationStep] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
}


def migrate(
    kv: KeyValueStore,
    now_ms: int | None = None,
    id_factory: Callable[[], str] = generate_id,
) -> MigrationReport:
    """Bring persisted state up to CURRENT_VERSION.

    Args:
        kv: Document key-value store
        now_ms: Timestamp for upgraded records (defaults to now)
        id_factory: Id generator for sequences created by migration

    Returns:
        MigrationReport describing what changed
    """
    version = read_version(kv)
    report = MigrationReport(from_version=version, to_version=version)
    if version >= CURRENT_VERSION:
        return report

    ctx = MigrationContext(
        kv=kv,
        now_ms=now_ms if now_ms is not None else int(time.time() * 1000),
        id_factory=id_factory,
    )

    try:
        records = load_records(kv)
    except MigrationParseFailure as e:
        logger.warning(f"Treating sequence collection as empty: {e.message}")
        records = []
        report.parse_failed = True

    for step_version in range(version, CURRENT_VERSION):
        records = MIGRATIONS[step_version](records, ctx, report)

    if records or not report.parse_failed:
        dump_records(kv, records)
    kv.set(MIGRATION_KEY, str(CURRENT_VERSION))
    report.to_version = CURRENT_VERSION

    logger.info(
        "Migrated sequence data",
        extra={
            "from_version": report.from_version,
            "to_version": report.to_version,
            "upgraded": report.upgraded,
            "legacy_imported": report.legacy_imported,
        },
    )
    return report
