"""
Document module for Sequencer - the host document seen by the engine.

This module provides:
- The element tree (containers, text leaves, per-element plugin data)
- The Document with current page, selection and selection listeners
- Scoped typeface readiness for text mutation

Invariants:
    - The tree is the source of truth for what has been stamped
    - Copying an element copies its plugin data verbatim
"""

from .tree import (
    MIXED,
    Document,
    Element,
    ElementType,
    FontName,
    TextElement,
    element_from_dict,
)
from .typeface import (
    DEFAULT_FONT,
    InstantTypefaceLoader,
    TypefaceLoader,
    apply_typeface,
    load_typeface,
    resolve_typeface,
)

__all__ = [
    "Document",
    "Element",
    "ElementType",
    "TextElement",
    "FontName",
    "MIXED",
    "element_from_dict",
    "TypefaceLoader",
    "InstantTypefaceLoader",
    "DEFAULT_FONT",
    "resolve_typeface",
    "load_typeface",
    "apply_typeface",
]
