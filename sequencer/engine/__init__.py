"""
Engine module for Sequencer.

This module provides the value model and the pure increment engine:
- Type definitions (Sequence, Link, SequenceType, SequenceMode)
- Successor functions for number and letter sequences
- Validation, ordering and prefix formatting

Invariants:
    - Every function here is pure and total over valid input
    - compare_values agrees with increment order
"""

from .increment import (
    compare_values,
    full_value,
    increment_letter,
    increment_number,
    increment_value,
    is_valid_value,
    next_full_value,
    normalize_value,
    split_stamped_value,
)
from .types import Link, Sequence, SequenceMode, SequenceType

__all__ = [
    # Types
    "Sequence",
    "Link",
    "SequenceType",
    "SequenceMode",
    # Increment
    "increment_number",
    "increment_letter",
    "increment_value",
    "compare_values",
    "is_valid_value",
    "normalize_value",
    "full_value",
    "next_full_value",
    "split_stamped_value",
]
