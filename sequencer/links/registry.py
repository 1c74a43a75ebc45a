"""
Link registry for Sequencer.

Links are stored as plugin data on each text element:
    sequenceId:    id of the sequence that stamped it
    stampedValue:  exact formatted string written at stamp time
    stampedAt:     Unix ms of the stamp

Lookups from a sequence to its elements (and duplicate detection) are full
depth-first scans of the current page; no index is kept, so results always
reflect the live tree.

Invariants:
    - A missing or empty sequenceId means "no link"
    - Cleared links are written as empty strings
    - Duplicate detection compares stampedValue exactly; copy/paste copies
      plugin data verbatim, so copies carry identical values
    - Traversal order is pre-order depth-first and not stable across edits

How to change safely:
    - The three metadata keys are read by older documents; never rename them
    - Any index added here must be invalidated on every document change
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator

from ..document.tree import Document, Element, TextElement
from ..engine.types import Link

logger = logging.getLogger(__name__)

SEQUENCE_ID_KEY = "sequenceId"
STAMPED_VALUE_KEY = "stampedValue"
STAMPED_AT_KEY = "stampedAt"


class LinkRegistry:
    """Reads and writes element links and scans the document for them.

    Example:
        >>> registry = LinkRegistry(document)
        >>> registry.set_link(label, "seq_1", "INV-0099")
        >>> registry.get_link(label).stamped_value
        'INV-0099'
    """

    def __init__(self, document: Document) -> None:
        self.document = document

    def get_link(self, element: Element) -> Link | None:
        """Read an element's link, or None when it has none."""
        sequence_id = element.get_plugin_data(SEQUENCE_ID_KEY)
        if not sequence_id:
            return None

        raw_at = element.get_plugin_data(STAMPED_AT_KEY)
        try:
            stamped_at = int(raw_at) if raw_at else 0
        except ValueError:
            stamped_at = 0

        return Link(
            sequence_id=sequence_id,
            stamped_value=element.get_plugin_data(STAMPED_VALUE_KEY),
            stamped_at=stamped_at,
        )

    def set_link(
        self,
        element: Element,
        sequence_id: str,
        stamped_value: str,
        stamped_at: int | None = None,
    ) -> Link:
        """Record that a sequence stamped a value into the element."""
        link = Link(
            sequence_id=sequence_id,
            stamped_value=stamped_value,
            stamped_at=stamped_at if stamped_at is not None else int(time.time() * 1000),
        )
        element.set_plugin_data(SEQUENCE_ID_KEY, link.sequence_id)
        element.set_plugin_data(STAMPED_VALUE_KEY, link.stamped_value)
        element.set_plugin_data(STAMPED_AT_KEY, str(link.stamped_at))
        return link

    def clear_link(self, element: Element) -> None:
        """Remove the element's link."""
        element.set_plugin_data(SEQUENCE_ID_KEY, "")
        element.set_plugin_data(STAMPED_VALUE_KEY, "")
        element.set_plugin_data(STAMPED_AT_KEY, "")

    def relink(self, element: Element, sequence_id: str) -> Link | None:
        """Point an existing link at another sequence.

        Only sequenceId changes; stampedValue and stampedAt are preserved.

        Returns:
            The updated Link, or None if the element had no link
        """
        if self.get_link(element) is None:
            return None
        element.set_plugin_data(SEQUENCE_ID_KEY, sequence_id)
        return self.get_link(element)

    def iter_text_elements(self) -> Iterator[TextElement]:
        """All text leaves of the current page, depth-first."""
        for element in self.document.walk():
            if isinstance(element, TextElement):
                yield element

    def find_linked_elements(self, sequence_id: str) -> list[TextElement]:
        """Text elements whose link points at sequence_id, in traversal order."""
        return [
            element
            for element in self.iter_text_elements()
            if element.get_plugin_data(SEQUENCE_ID_KEY) == sequence_id
        ]

    def count_duplicate_stamped_value(self, value: str, excluding_element_id: str) -> int:
        """Count other text elements carrying exactly this stamped value."""
        if not value:
            return 0
        return sum(
            1
            for element in self.iter_text_elements()
            if element.id != excluding_element_id
            and element.get_plugin_data(STAMPED_VALUE_KEY) == value
        )

    def find_text_elements_with_value(self, value: str) -> list[TextElement]:
        """Text elements whose content matches value (trimmed, case-insensitive)."""
        needle = value.strip().lower()
        return [
            element
            for element in self.iter_text_elements()
            if element.characters.strip().lower() == needle
        ]

    def stamped_values(self) -> dict[str, list[TextElement]]:
        """Group linked text elements by stamped value (empty values skipped)."""
        groups: dict[str, list[TextElement]] = {}
        for element in self.iter_text_elements():
            value = element.get_plugin_data(STAMPED_VALUE_KEY)
            if value and element.get_plugin_data(SEQUENCE_ID_KEY):
                groups.setdefault(value, []).append(element)
        return groups
