"""
Sequence store for Sequencer.

This module manages persisted sequence definitions on top of the document
key-value store:
- Sequence CRUD operations
- The "selected sequence" pointer
- Schema migration on first load

Invariants:
    - Every mutation reads the full collection fresh, applies the change,
      and writes the full collection back in one set() call
    - id, type, mode and created_at never change after creation
    - A compliance watermark is never lowered through update()
    - Corrupt persisted JSON reads as an empty collection

How to change safely:
    - New fields go through Sequence.to_dict/from_dict and a migration step
    - Keep update() validation in sync with the compliance guard
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..engine.increment import compare_values, normalize_value
from ..engine.types import Sequence, SequenceMode, SequenceType
from ..errors import (
    ComplianceViolationError,
    MigrationParseFailure,
    SequenceNotFoundError,
    ValidationError,
)
from .kv import KeyValueStore
from .layout import SELECTED_KEY, dump_records, load_records
from .migrations import MigrationReport, generate_id, migrate

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = ("id", "type", "mode", "created_at")


class SequenceStore:
    """CRUD layer over persisted sequences.

    The store keeps no in-memory copy: the key-value store is read on every
    call, so a stale object can never clobber newer state.

    Example:
        >>> store = SequenceStore(InMemoryKeyValueStore())
        >>> store.migrate()
        >>> seq = store.create(name="Invoice#", prefix="INV-", next_value="0099")
        >>> store.get(seq.id).next_value
        '0099'
    """

    def __init__(
        self,
        kv: KeyValueStore,
        id_factory: Callable[[], str] = generate_id,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            kv: Document key-value store
            id_factory: Generates ids for new sequences
            clock: Returns the current time in Unix ms
        """
        self.kv = kv
        self._id_factory = id_factory
        self._clock = clock or (lambda: int(time.time() * 1000))

    def migrate(self) -> MigrationReport:
        """Upgrade persisted state to the current schema version."""
        return migrate(self.kv, now_ms=self._clock(), id_factory=self._id_factory)

    def _read(self) -> list[Sequence]:
        try:
            records = load_records(self.kv)
        except MigrationParseFailure as e:
            logger.warning(f"Ignoring unreadable sequence data: {e.message}")
            return []

        sequences = []
        for record in records:
            try:
                sequences.append(Sequence.from_dict(record))
            except (KeyError, ValueError) as e:
                logger.warning(
                    "Skipping malformed sequence record",
                    extra={"record_id": record.get("id"), "error": str(e)},
                )
        return sequences

    def _write(self, sequences: list[Sequence]) -> None:
        dump_records(self.kv, [s.to_dict() for s in sequences])

    def list(self) -> list[Sequence]:
        """All sequences in creation order."""
        return self._read()

    def get(self, sequence_id: str | None) -> Sequence | None:
        """Get a sequence by id, or None."""
        if not sequence_id:
            return None
        for sequence in self._read():
            if sequence.id == sequence_id:
                return sequence
        return None

    def require(self, sequence_id: str | None) -> Sequence:
        """Get a sequence by id.

        Raises:
            SequenceNotFoundError: If the id does not resolve
        """
        sequence = self.get(sequence_id)
        if sequence is None:
            raise SequenceNotFoundError(sequence_id)
        return sequence

    def create(
        self,
        name: str,
        next_value: str,
        prefix: str = "",
        seq_type: SequenceType = SequenceType.NUMBER,
        mode: SequenceMode = SequenceMode.COMPLIANCE,
        select: bool = True,
    ) -> Sequence:
        """Create and persist a new sequence.

        Args:
            name: Human label
            next_value: First value to issue (validated against seq_type)
            prefix: String prepended to issued values
            seq_type: Number or letter
            mode: Governance policy
            select: Also make it the selected sequence

        Returns:
            The created Sequence

        Raises:
            ValidationError: If name is empty or next_value is malformed
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Sequence name is required", field_name="name")

        sequence = Sequence(
            id=self._id_factory(),
            name=name,
            prefix=(prefix or "").strip(),
            type=seq_type,
            next_value=normalize_value(next_value, seq_type, field_name="nextValue"),
            highest_used="",
            mode=mode,
            locked=False,
            created_at=self._clock(),
        )

        sequences = self._read()
        sequences.append(sequence)
        self._write(sequences)
        if select:
            self.set_selected(sequence.id)

        logger.info(
            "Created sequence",
            extra={
                "sequence_id": sequence.id,
                "type": sequence.type.value,
                "mode": sequence.mode.value,
            },
        )
        return sequence

    def update(self, sequence_id: str, mutator: Callable[[Sequence], Sequence]) -> Sequence:
        """Apply a mutation to one sequence and persist the collection.

        Args:
            sequence_id: Sequence to update
            mutator: Returns the new version of the sequence

        Returns:
            The updated Sequence

        Raises:
            SequenceNotFoundError: If the id does not resolve
            ValidationError: If the result is malformed or touches an immutable field
            ComplianceViolationError: If a compliance watermark would decrease
        """
        sequences = self._read()
        for index, current in enumerate(sequences):
            if current.id == sequence_id:
                break
        else:
            raise SequenceNotFoundError(sequence_id)

        updated = mutator(current)
        self._check_update(current, updated)

        sequences[index] = updated
        self._write(sequences)
        return updated

    def _check_update(self, current: Sequence, updated: Sequence) -> None:
        for name in _IMMUTABLE_FIELDS:
            if getattr(current, name) != getattr(updated, name):
                raise ValidationError(f"Field '{name}' cannot be changed", field_name=name)

        normalize_value(updated.next_value, updated.type, field_name="nextValue")

        if current.is_compliance:
            if compare_values(updated.highest_used, current.highest_used, current.type) < 0:
                raise ComplianceViolationError(
                    "Watermark of a compliance sequence cannot decrease",
                    operation="update",
                    sequence_id=current.id,
                )
            if current.locked and not updated.locked:
                raise ComplianceViolationError(
                    "A locked compliance sequence cannot be unlocked",
                    operation="update",
                    sequence_id=current.id,
                )

    def delete(self, sequence_id: str) -> bool:
        """Delete a sequence.

        Links pointing at it are left untouched (they become broken links).
        Compliance checks are the caller's responsibility.

        Returns:
            True if deleted, False if not found
        """
        sequences = self._read()
        remaining = [s for s in sequences if s.id != sequence_id]
        if len(remaining) == len(sequences):
            return False

        self._write(remaining)
        if self.kv.get(SELECTED_KEY) == sequence_id:
            self.set_selected(remaining[0].id if remaining else None)

        logger.info("Deleted sequence", extra={"sequence_id": sequence_id})
        return True

    def get_selected(self) -> str | None:
        """Id of the selected sequence, or None."""
        return self.kv.get(SELECTED_KEY) or None

    def set_selected(self, sequence_id: str | None) -> None:
        """Point the selection at a sequence (None clears it)."""
        self.kv.set(SELECTED_KEY, sequence_id or "")

    def resolve_selected(self) -> Sequence | None:
        """Selected sequence, falling back to the first one.

        A missing or dangling pointer is repaired and persisted.
        """
        sequences = self._read()
        selected_id = self.get_selected()

        for sequence in sequences:
            if sequence.id == selected_id:
                return sequence

        fallback = sequences[0] if sequences else None
        new_id = fallback.id if fallback else None
        if new_id != selected_id:
            self.set_selected(new_id)
        return fallback
