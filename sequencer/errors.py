"""
Error types for Sequencer.

This module defines all exception types raised by the engine:
- SequencerError: Base exception
- SequenceNotFoundError: Referenced sequence id is absent from the store
- ComplianceViolationError: Operation denied by the compliance guard
- InvalidSelectionError: Wrong selection cardinality or element type
- ValidationError: Malformed sequence value or message payload
- PersistenceError: Writing the sequence collection failed
- MigrationParseFailure: Persisted JSON is corrupt (recovered locally)
- FontResolutionFailure: Typeface could not be determined (recovered locally)

Invariants:
    - All errors inherit from SequencerError
    - Every error carries a stable code for the UI channel
    - Messages are human-readable and safe to show to the author
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SequencerError(Exception):
    """Base exception for all Sequencer errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SEQUENCER_ERROR"
        self.details = details or {}


class SequenceNotFoundError(SequencerError):
    """Referenced sequence does not exist in the store."""

    def __init__(self, sequence_id: Optional[str]) -> None:
        super().__init__(
            "Sequence not found",
            code="SEQUENCE_NOT_FOUND",
            details={"sequence_id": sequence_id},
        )
        self.sequence_id = sequence_id


class ComplianceViolationError(SequencerError):
    """Operation denied by the compliance guard.

    Raised when:
    - Deleting a compliance sequence that still has linked elements
    - Re-stamping a unique compliance value
    - Resetting a compliance sequence at or below its watermark
    - Changing the prefix of a locked sequence
    """

    def __init__(
        self,
        message: str,
        operation: str,
        sequence_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="COMPLIANCE_VIOLATION",
            details={"operation": operation, "sequence_id": sequence_id},
        )
        self.operation = operation
        self.sequence_id = sequence_id


class InvalidSelectionError(SequencerError):
    """Operation requires exactly one text element to be selected."""

    def __init__(self, message: str = "Select a single text layer") -> None:
        super().__init__(message, code="INVALID_SELECTION")


class ValidationError(SequencerError):
    """Value or payload validation failed.

    Raised when:
    - A number value contains non-digit characters
    - A letter value contains characters outside A-Z
    - A message payload is missing required fields
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        value: Optional[Any] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "value": value},
        )
        self.field_name = field_name
        self.value = value


class PersistenceError(SequencerError):
    """Writing the sequence collection failed.

    The element text may already have changed; callers re-run the selection
    analyzer to reconcile against the document.
    """

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, code="PERSISTENCE_ERROR", details={"key": key})
        self.key = key


class MigrationParseFailure(SequencerError):
    """Persisted sequence JSON could not be parsed."""

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message, code="MIGRATION_PARSE_FAILURE", details={"key": key})
        self.key = key


class FontResolutionFailure(SequencerError):
    """The element's typeface is mixed or unreadable."""

    def __init__(self, message: str, element_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="FONT_RESOLUTION_FAILURE",
            details={"element_id": element_id},
        )
        self.element_id = element_id
