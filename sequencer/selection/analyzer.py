"""
Selection analyzer for Sequencer.

Derives the UI state for the current selection from the live document,
the link registry and the sequence store:

    none         - zero or several elements selected
    not-text     - one non-text element selected
    unlinked     - text element without a link
    broken-link  - link to a sequence that no longer exists
    needs-stamp  - linked, but never stamped or the value is duplicated
    stamped      - linked with a unique stamped value

Invariants:
    - Nothing is cached; every call re-derives from the tree and store
    - A duplicated stamp always yields needs-stamp, for every copy
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..document.tree import Element, TextElement
from ..engine.types import Sequence
from ..links.registry import LinkRegistry
from ..store.sequence_store import SequenceStore


class SelectionKind(Enum):
    """Tags of the selection state variant."""

    NONE = "none"
    NOT_TEXT = "not-text"
    UNLINKED = "unlinked"
    NEEDS_STAMP = "needs-stamp"
    STAMPED = "stamped"
    BROKEN_LINK = "broken-link"


@dataclass(frozen=True)
class SelectionState:
    """Derived state of the current selection.

    Attributes:
        kind: Which variant applies
        element_id: The selected element (single selection only)
        text: Current text content (unlinked)
        sequence: Resolved sequence (needs-stamp, stamped)
        sequence_id: Referenced sequence id (broken-link, needs-stamp, stamped)
        stamped_value: Stamped value (broken-link, needs-stamp, stamped)
        is_duplicate: Whether the stamped value appears on other elements
        selection_count: Number of selected elements
    """

    kind: SelectionKind
    element_id: str | None = None
    text: str | None = None
    sequence: Sequence | None = None
    sequence_id: str | None = None
    stamped_value: str | None = None
    is_duplicate: bool = False
    selection_count: int = 0

    def to_message(self) -> dict[str, Any]:
        """Outbound selection-state message."""
        message: dict[str, Any] = {
            "type": "selection-state",
            "state": self.kind.value,
            "selectionCount": self.selection_count,
        }
        if self.element_id is not None:
            message["elementId"] = self.element_id
        if self.kind == SelectionKind.UNLINKED:
            message["text"] = self.text
        elif self.kind == SelectionKind.BROKEN_LINK:
            message["sequenceId"] = self.sequence_id
            message["stampedValue"] = self.stamped_value
        elif self.kind in (SelectionKind.NEEDS_STAMP, SelectionKind.STAMPED):
            message["sequence"] = self.sequence.to_dict() if self.sequence else None
            message["stampedValue"] = self.stamped_value
            message["isDuplicate"] = self.is_duplicate
        return message


class SelectionAnalyzer:
    """Computes SelectionState for a selection.

    Example:
        >>> analyzer = SelectionAnalyzer(store, registry)
        >>> analyzer.analyze([label]).kind
        <SelectionKind.STAMPED: 'stamped'>
    """

    def __init__(self, store: SequenceStore, registry: LinkRegistry) -> None:
        self.store = store
        self.registry = registry

    def analyze(self, selection: list[Element]) -> SelectionState:
        if len(selection) != 1:
            return SelectionState(SelectionKind.NONE, selection_count=len(selection))

        element = selection[0]
        if not isinstance(element, TextElement):
            return SelectionState(SelectionKind.NOT_TEXT, element_id=element.id, selection_count=1)

        link = self.registry.get_link(element)
        if link is None:
            return SelectionState(
                SelectionKind.UNLINKED,
                element_id=element.id,
                text=element.characters,
                selection_count=1,
            )

        sequence = self.store.get(link.sequence_id)
        if sequence is None:
            return SelectionState(
                SelectionKind.BROKEN_LINK,
                element_id=element.id,
                sequence_id=link.sequence_id,
                stamped_value=link.stamped_value,
                selection_count=1,
            )

        duplicates = self.registry.count_duplicate_stamped_value(link.stamped_value, element.id)
        kind = SelectionKind.STAMPED
        if duplicates > 0 or not link.has_stamp:
            kind = SelectionKind.NEEDS_STAMP

        return SelectionState(
            kind,
            element_id=element.id,
            sequence=sequence,
            sequence_id=sequence.id,
            stamped_value=link.stamped_value,
            is_duplicate=duplicates > 0,
            selection_count=1,
        )

    def analyze_document(self) -> SelectionState:
        """Analyze the document's current selection."""
        return self.analyze(self.registry.document.selection)
