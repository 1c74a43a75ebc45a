"""
Compliance guard for Sequencer.

This module decides whether destructive operations are allowed on a
sequence given its governance mode:
- delete: refused while a compliance sequence still has linked elements
- re-stamp: refused for a unique compliance value (allowed for duplicates)
- reset: refused at or below a compliance watermark
- prefix change: refused once a sequence is locked
- batch update: refused for compliance (it rewrites issued values in place)

Design mode sequences are only subject to syntactic validation.

Invariants:
    - Checks are pure: they read their inputs and never mutate state
    - Every denial carries a human-readable reason
    - Callers gate before mutating, so a denial leaves no partial state

How to change safely:
    - New operations must be added to Operation and get a check_* method
    - Relaxing a check needs a matching drift finding in audit.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..engine.increment import compare_values
from ..engine.types import Link, Sequence
from ..errors import ComplianceViolationError

logger = logging.getLogger(__name__)


class Operation(Enum):
    """Operations gated by the guard."""

    DELETE = "delete"
    RESTAMP = "restamp"
    RESET = "reset"
    PREFIX_CHANGE = "prefix-change"
    BATCH_UPDATE = "batch-update"


@dataclass(frozen=True)
class Decision:
    """Outcome of a compliance check.

    Attributes:
        allowed: Whether the operation may proceed
        operation: The checked operation
        sequence_id: Sequence the check applied to
        reason: Why the operation was refused ("" when allowed)
    """

    allowed: bool
    operation: Operation
    sequence_id: str
    reason: str = ""

    @classmethod
    def allow(cls, operation: Operation, sequence: Sequence) -> Decision:
        return cls(True, operation, sequence.id)

    @classmethod
    def deny(cls, operation: Operation, sequence: Sequence, reason: str) -> Decision:
        return cls(False, operation, sequence.id, reason)


class ComplianceGuard:
    """Policy engine for compliance-mode sequences.

    Thread safety:
        This class is stateless and thread-safe.

    Example:
        >>> guard = ComplianceGuard()
        >>> decision = guard.check_reset(invoice_seq, "0050")
        >>> decision.allowed
        False
        >>> guard.require(decision)
        Traceback (most recent call last):
        ...
        ComplianceViolationError: ...
    """

    def check_delete(self, sequence: Sequence, linked_count: int) -> Decision:
        """Deleting a compliance sequence requires it to have no linked elements."""
        if sequence.is_compliance and linked_count > 0:
            noun = "layer is" if linked_count == 1 else "layers are"
            return Decision.deny(
                Operation.DELETE,
                sequence,
                f"Cannot delete compliance sequence '{sequence.name}': "
                f"{linked_count} {noun} still linked to it",
            )
        return Decision.allow(Operation.DELETE, sequence)

    def check_restamp(
        self,
        sequence: Sequence,
        link: Link | None,
        duplicate_count: int,
    ) -> Decision:
        """Overwriting a stamped compliance value is only allowed for duplicates.

        Args:
            sequence: Sequence owning the existing stamp
            link: The element's current link
            duplicate_count: Other elements carrying the same stamped value
        """
        if link is None or not link.has_stamp or not sequence.is_compliance:
            return Decision.allow(Operation.RESTAMP, sequence)
        if duplicate_count > 0:
            return Decision.allow(Operation.RESTAMP, sequence)
        return Decision.deny(
            Operation.RESTAMP,
            sequence,
            f"'{link.stamped_value}' was issued by compliance sequence "
            f"'{sequence.name}' and cannot be re-stamped",
        )

    def check_reset(self, sequence: Sequence, value: str) -> Decision:
        """A compliance reset must land strictly above the watermark.

        The value is expected to be validated and normalized already.
        """
        if not sequence.is_compliance:
            return Decision.allow(Operation.RESET, sequence)
        if compare_values(value, sequence.highest_used, sequence.type) <= 0:
            return Decision.deny(
                Operation.RESET,
                sequence,
                f"Reset value '{value}' must be greater than the highest issued "
                f"value '{sequence.highest_used}'",
            )
        return Decision.allow(Operation.RESET, sequence)

    def check_prefix_change(self, sequence: Sequence, new_prefix: str) -> Decision:
        """The prefix of a locked sequence is frozen."""
        if sequence.locked and new_prefix != sequence.prefix:
            return Decision.deny(
                Operation.PREFIX_CHANGE,
                sequence,
                f"Prefix of '{sequence.name}' is locked after its first stamp",
            )
        return Decision.allow(Operation.PREFIX_CHANGE, sequence)

    def check_batch_update(self, sequence: Sequence) -> Decision:
        """Rewriting matching layers in place is a design-mode operation."""
        if sequence.is_compliance:
            return Decision.deny(
                Operation.BATCH_UPDATE,
                sequence,
                f"Batch update would renumber issued values of compliance "
                f"sequence '{sequence.name}'",
            )
        return Decision.allow(Operation.BATCH_UPDATE, sequence)

    def require(self, decision: Decision) -> None:
        """Raise if the decision is a denial.

        Raises:
            ComplianceViolationError: If decision.allowed is False
        """
        if decision.allowed:
            return
        logger.warning(
            "Compliance check denied",
            extra={
                "operation": decision.operation.value,
                "sequence_id": decision.sequence_id,
                "reason": decision.reason,
            },
        )
        raise ComplianceViolationError(
            decision.reason,
            operation=decision.operation.value,
            sequence_id=decision.sequence_id,
        )


# Default guard instance
_default_guard: ComplianceGuard | None = None


def get_compliance_guard() -> ComplianceGuard:
    """Get the default compliance guard instance."""
    global _default_guard
    if _default_guard is None:
        _default_guard = ComplianceGuard()
    return _default_guard
