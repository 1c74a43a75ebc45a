"""
Increment engine for Sequencer.

Pure functions over raw (unprefixed) sequence values:
- Successor computation for numbers and letters
- Validation and normalization of user-supplied values
- Ordering consistent with increment order
- Formatting with the sequence prefix

Invariants:
    - increment_number preserves the input width via zero padding
    - increment_letter is the bijective base-26 successor (Z -> AA)
    - compare_values agrees with increment order for every valid pair
    - The empty string orders below every valid value

How to change safely:
    - Functions here must stay pure; no store or document access
    - Add new sequence types by extending every dispatch below
"""

from __future__ import annotations

from .types import Sequence, SequenceType
from ..errors import ValidationError

_LETTERS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZ")


def increment_number(value: str) -> str:
    """Increment a decimal value, preserving leading zeros.

    "0099" -> "0100", "5100" -> "5101", "99" -> "100"
    """
    next_num = int(value, 10) + 1
    return str(next_num).zfill(len(value))


def increment_letter(value: str) -> str:
    """Increment a letter value (spreadsheet column style).

    A -> B, Z -> AA, AZ -> BA, ZZ -> AAA
    """
    chars = list(value.upper())
    i = len(chars) - 1

    while i >= 0:
        if chars[i] == "Z":
            chars[i] = "A"
            i -= 1
        else:
            chars[i] = chr(ord(chars[i]) + 1)
            return "".join(chars)

    # Every position rolled over
    return "A" + "".join(chars)


def increment_value(value: str, seq_type: SequenceType) -> str:
    """Increment a raw value according to its sequence type."""
    if seq_type == SequenceType.LETTER:
        return increment_letter(value)
    return increment_number(value)


def is_valid_value(value: str, seq_type: SequenceType) -> bool:
    """Check that a raw value is a well-formed representation of seq_type."""
    if not value:
        return False
    if seq_type == SequenceType.LETTER:
        return all(c in _LETTERS for c in value)
    return value.isascii() and value.isdigit()


def normalize_value(value: str, seq_type: SequenceType, field_name: str = "value") -> str:
    """Strip and upper-case a user-supplied value, then validate it.

    Raises:
        ValidationError: If the value is empty or malformed
    """
    normalized = (value or "").strip()
    if seq_type == SequenceType.LETTER:
        normalized = normalized.upper()

    if not is_valid_value(normalized, seq_type):
        if seq_type == SequenceType.LETTER:
            expected = "letters A-Z"
        else:
            expected = "digits 0-9"
        raise ValidationError(
            f"Invalid {seq_type.value} value '{value}': expected {expected}",
            field_name=field_name,
            value=value,
        )
    return normalized


def compare_values(a: str, b: str, seq_type: SequenceType) -> int:
    """Order two raw values consistently with increment order.

    Numbers compare as integers. Letters compare by length, then
    lexicographically, so "Z" < "AA". The empty string means "nothing
    issued" and sorts below everything.

    Returns:
        Negative if a < b, zero if equal, positive if a > b
    """
    if a == b:
        return 0
    if not a:
        return -1
    if not b:
        return 1

    if seq_type == SequenceType.LETTER:
        key_a = (len(a), a.upper())
        key_b = (len(b), b.upper())
    else:
        key_a = int(a, 10)
        key_b = int(b, 10)

    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def full_value(sequence: Sequence) -> str:
    """Formatted value the next stamp will write: prefix + next_value."""
    return (sequence.prefix or "") + sequence.next_value


def next_full_value(sequence: Sequence) -> str:
    """Formatted value after the next stamp (UI preview)."""
    return (sequence.prefix or "") + increment_value(sequence.next_value, sequence.type)


def split_stamped_value(stamped_value: str, prefix: str) -> str | None:
    """Recover the unformatted portion of a stamped value.

    Returns None when the stamped value does not carry the prefix.
    """
    if prefix and not stamped_value.startswith(prefix):
        return None
    return stamped_value[len(prefix):]
