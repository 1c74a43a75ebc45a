"""
Core type definitions for Sequencer.

This module defines the foundational types shared by every component:
- SequenceType: Representation of sequence values (number, letter)
- SequenceMode: Governance policy (compliance, design)
- Sequence: A named, typed identifier generator with a watermark
- Link: Per-element record of which sequence stamped it

Invariants:
    - Sequence.id, type, mode and created_at never change after creation
    - highest_used only increases; "" means nothing has been issued yet
    - next_value is always a valid representation of the sequence type
    - Persisted record keys are camelCase (nextValue, highestUsed, createdAt)

How to change safely:
    - Add new fields with defaults so older records still load
    - Bump the migration version when a persisted key is renamed
    - Never reorder or rename enum values; they are persisted verbatim

Example:
    >>> seq = Sequence(
    ...     id="seq_abc",
    ...     name="Invoice#",
    ...     prefix="INV-",
    ...     type=SequenceType.NUMBER,
    ...     next_value="0099",
    ... )
    >>> seq.to_dict()["nextValue"]
    '0099'
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class SequenceType(Enum):
    """How sequence values are represented and incremented."""

    NUMBER = "number"  # Zero-padded decimal
    LETTER = "letter"  # Bijective base-26 (A..Z, AA..)

    @classmethod
    def from_str(cls, value: str) -> SequenceType:
        """Convert string representation to SequenceType.

        Raises:
            ValueError: If value is not a valid sequence type
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid sequence type '{value}'. Valid types: {valid}")


class SequenceMode(Enum):
    """Governance policy applied to a sequence."""

    COMPLIANCE = "compliance"
    DESIGN = "design"

    @classmethod
    def from_str(cls, value: str) -> SequenceMode:
        """Convert string representation to SequenceMode.

        Raises:
            ValueError: If value is not a valid mode
        """
        for mode in cls:
            if mode.value == value:
                return mode
        valid = [m.value for m in cls]
        raise ValueError(f"Invalid sequence mode '{value}'. Valid modes: {valid}")


@dataclass(frozen=True)
class Sequence:
    """A named identifier sequence.

    Attributes:
        id: Opaque unique identifier, assigned at creation
        name: Human label (mutable, non-unique)
        prefix: String prepended to every issued value
        type: Value representation (number or letter)
        next_value: Unformatted value issued by the next stamp
        highest_used: Largest unformatted value ever issued ("" if none)
        mode: Governance policy
        locked: True once a compliance sequence has stamped
        created_at: Creation timestamp (Unix ms)
    """

    id: str
    name: str
    prefix: str
    type: SequenceType
    next_value: str
    highest_used: str = ""
    mode: SequenceMode = SequenceMode.COMPLIANCE
    locked: bool = False
    created_at: int = 0

    @property
    def is_compliance(self) -> bool:
        """Whether the compliance policy applies."""
        return self.mode == SequenceMode.COMPLIANCE

    def evolve(self, **changes: Any) -> Sequence:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted record representation."""
        return {
            "id": self.id,
            "name": self.name,
            "prefix": self.prefix,
            "type": self.type.value,
            "nextValue": self.next_value,
            "highestUsed": self.highest_used,
            "mode": self.mode.value,
            "locked": self.locked,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Sequence:
        """Create from a persisted (current version) record."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            prefix=data.get("prefix") or "",
            type=SequenceType.from_str(data.get("type", "number")),
            next_value=data["nextValue"],
            highest_used=data.get("highestUsed") or "",
            mode=SequenceMode.from_str(data.get("mode", "compliance")),
            locked=bool(data.get("locked", False)),
            created_at=int(data.get("createdAt") or 0),
        )


@dataclass(frozen=True)
class Link:
    """Link from a text element to the sequence that stamped it.

    The sequence id is a non-owning reference: it may dangle after the
    sequence is deleted (the broken-link state).

    Attributes:
        sequence_id: Referenced sequence id
        stamped_value: Exact formatted string written at stamp time
        stamped_at: Stamp timestamp (Unix ms), 0 if never stamped
    """

    sequence_id: str
    stamped_value: str = ""
    stamped_at: int = 0

    @property
    def has_stamp(self) -> bool:
        """Whether a value has been stamped through this link."""
        return bool(self.stamped_value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for UI messages."""
        return {
            "sequenceId": self.sequence_id,
            "stampedValue": self.stamped_value,
            "stampedAt": self.stamped_at,
        }
