"""
Links module for Sequencer - element-to-sequence references.

Links are weak references stored as element metadata. They are never
deleted when their sequence is deleted; they become broken links that
the author can relink.
"""

from .registry import (
    SEQUENCE_ID_KEY,
    STAMPED_AT_KEY,
    STAMPED_VALUE_KEY,
    LinkRegistry,
)

__all__ = [
    "LinkRegistry",
    "SEQUENCE_ID_KEY",
    "STAMPED_VALUE_KEY",
    "STAMPED_AT_KEY",
]
