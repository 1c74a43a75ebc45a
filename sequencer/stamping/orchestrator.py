"""
Stamping orchestrator for Sequencer.

The orchestrator runs every operation that mutates sequences or stamped
content, with compliance checks interleaved:
- stamp_or_link: write the next value into a text element and link it
- unlink / relink: edit an element's link without touching its text
- reset: move a sequence's next value
- delete_sequence / update_sequence: sequence maintenance
- batch_update: rewrite every layer showing the current value (design mode)

Stamp sequence:
    1. resolve the sequence
    2. gate re-stamps through the compliance guard
    3. format prefix + next_value
    4. load the typeface, then write the text under the lock
    5. record the link
    6. advance next_value, raise the watermark, lock compliance sequences
    7. persist the sequence collection

Invariants:
    - Every compliance check runs before the first mutation
    - A failed text write leaves link and sequence untouched
    - A failed persist is reported even though the text already changed;
      the element text is the durable record
    - Mutating operations are serialized by one lock, and nothing is
      awaited while it is held; typeface loads happen before it is taken

How to change safely:
    - Keep guard checks ahead of any document or store write
    - New operations must re-read the store inside the lock
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..compliance.guard import ComplianceGuard, get_compliance_guard
from ..document.tree import Element, FontName, TextElement
from ..document.typeface import DEFAULT_FONT, TypefaceLoader, apply_typeface, load_typeface
from ..engine.increment import (
    compare_values,
    full_value,
    increment_value,
    next_full_value,
    normalize_value,
)
from ..engine.types import Link, Sequence
from ..errors import InvalidSelectionError, PersistenceError, SequencerError, ValidationError
from ..links.registry import LinkRegistry
from ..store.sequence_store import SequenceStore

logger = logging.getLogger(__name__)


@dataclass
class StampResult:
    """Result of a successful stamp.

    Attributes:
        value: Formatted value written into the element
        sequence: Sequence state after advancing
        element_id: Stamped element
        link: Link recorded on the element
    """

    value: str
    sequence: Sequence
    element_id: str
    link: Link


@dataclass
class DeleteResult:
    """Result of deleting a sequence.

    Attributes:
        sequence_id: Deleted sequence
        selected: Sequence selected afterwards, if any
    """

    sequence_id: str
    selected: Sequence | None


@dataclass
class BatchUpdateResult:
    """Result of a batch update.

    Attributes:
        previous_value: Formatted value that was searched for
        value: Formatted value written into matching layers
        count: Number of layers rewritten
        sequence: Sequence state afterwards
    """

    previous_value: str
    value: str
    count: int
    sequence: Sequence


def require_text_element(element: Element | None) -> TextElement:
    """Raises InvalidSelectionError unless element is a text element."""
    if not isinstance(element, TextElement):
        raise InvalidSelectionError()
    return element


class StampingOrchestrator:
    """Coordinates store, links, guard and document for each operation.

    Example:
        >>> orchestrator = StampingOrchestrator(store, registry, InstantTypefaceLoader())
        >>> result = await orchestrator.stamp_or_link(label, invoice.id)
        >>> result.value
        'INV-0099'
    """

    def __init__(
        self,
        store: SequenceStore,
        registry: LinkRegistry,
        typeface_loader: TypefaceLoader,
        guard: ComplianceGuard | None = None,
        fallback_font: FontName = DEFAULT_FONT,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Sequence store
            registry: Link registry over the document
            typeface_loader: Host typeface loader
            guard: Compliance guard instance
            fallback_font: Typeface used when an element's cannot be determined
            clock: Returns the current time in Unix ms
        """
        self.store = store
        self.registry = registry
        self.typeface_loader = typeface_loader
        self.guard = guard or get_compliance_guard()
        self.fallback_font = fallback_font
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = asyncio.Lock()

    async def stamp_or_link(self, element: Element | None, sequence_id: str) -> StampResult:
        """Stamp the sequence's next value into a text element and link it.

        The typeface is loaded before the lock is taken; the lock only
        covers the synchronous checks and writes.

        Args:
            element: Selected element
            sequence_id: Sequence to stamp from

        Returns:
            StampResult with the written value and advanced sequence

        Raises:
            InvalidSelectionError: If element is not a text element
            SequenceNotFoundError: If sequence_id does not resolve
            ComplianceViolationError: If re-stamping is refused
            PersistenceError: If the advanced sequence could not be saved
        """
        text = require_text_element(element)
        self._check_restamp(text, self.store.require(sequence_id))

        font = await load_typeface(text, self.typeface_loader, self.fallback_font)

        async with self._lock:
            # State may have moved while the typeface was loading
            sequence = self.store.require(sequence_id)
            self._check_restamp(text, sequence)

            raw_value = sequence.next_value
            stamp_value = full_value(sequence)

            apply_typeface(text, font)
            text.characters = stamp_value

            now = self._clock()
            new_link = self.registry.set_link(text, sequence.id, stamp_value, stamped_at=now)

            def advance(current: Sequence) -> Sequence:
                highest = current.highest_used
                if compare_values(raw_value, highest, current.type) > 0:
                    highest = raw_value
                return current.evolve(
                    next_value=increment_value(current.next_value, current.type),
                    highest_used=highest,
                    locked=current.locked or current.is_compliance,
                )

            updated = self._persist(sequence.id, advance)

        logger.info(
            "Stamped value",
            extra={
                "sequence_id": sequence.id,
                "element_id": text.id,
                "value": stamp_value,
                "next_value": updated.next_value,
            },
        )
        return StampResult(value=stamp_value, sequence=updated, element_id=text.id, link=new_link)

    def _check_restamp(self, text: TextElement, sequence: Sequence) -> None:
        link = self.registry.get_link(text)
        if link is not None and (link.has_stamp or link.sequence_id != sequence.id):
            owner = self.store.get(link.sequence_id) or sequence
            duplicates = self.registry.count_duplicate_stamped_value(link.stamped_value, text.id)
            self.guard.require(self.guard.check_restamp(owner, link, duplicates))

    def _persist(self, sequence_id: str, mutator: Callable[[Sequence], Sequence]) -> Sequence:
        try:
            return self.store.update(sequence_id, mutator)
        except SequencerError:
            raise
        except Exception as e:
            logger.error(f"Failed to persist sequence {sequence_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save sequence: {e}") from e

    async def unlink(self, element: Element | None) -> None:
        """Clear the element's link. Not gated by compliance."""
        text = require_text_element(element)
        async with self._lock:
            self.registry.clear_link(text)
        logger.info("Unlinked element", extra={"element_id": text.id})

    async def relink(self, element: Element | None, sequence_id: str) -> Link:
        """Point an existing (possibly broken) link at another sequence.

        The stamped value and time are preserved; the text is not touched.

        Raises:
            InvalidSelectionError: If element is not a linked text element
            SequenceNotFoundError: If sequence_id does not resolve
        """
        text = require_text_element(element)
        async with self._lock:
            sequence = self.store.require(sequence_id)
            link = self.registry.relink(text, sequence.id)
            if link is None:
                raise InvalidSelectionError("Selected layer is not linked to a sequence")

        logger.info(
            "Relinked element",
            extra={"element_id": text.id, "sequence_id": sequence.id},
        )
        return link

    async def reset(self, sequence_id: str, value: str) -> Sequence:
        """Set a sequence's next value.

        Raises:
            SequenceNotFoundError: If sequence_id does not resolve
            ValidationError: If value is malformed for the sequence type
            ComplianceViolationError: If value is not above the watermark
        """
        async with self._lock:
            sequence = self.store.require(sequence_id)
            new_value = normalize_value(value, sequence.type, field_name="value")
            self.guard.require(self.guard.check_reset(sequence, new_value))

            updated = self._persist(sequence.id, lambda s: s.evolve(next_value=new_value))

        logger.info(
            "Reset sequence",
            extra={"sequence_id": sequence.id, "from": sequence.next_value, "to": new_value},
        )
        return updated

    async def delete_sequence(self, sequence_id: str) -> DeleteResult:
        """Delete a sequence; linked elements keep their (now broken) links.

        Raises:
            SequenceNotFoundError: If sequence_id does not resolve
            ComplianceViolationError: If a compliance sequence is still linked
        """
        async with self._lock:
            sequence = self.store.require(sequence_id)
            linked = self.registry.find_linked_elements(sequence.id)
            self.guard.require(self.guard.check_delete(sequence, len(linked)))

            self.store.delete(sequence.id)
            selected = self.store.resolve_selected()

        return DeleteResult(sequence_id=sequence.id, selected=selected)

    async def update_sequence(
        self,
        sequence_id: str,
        name: str | None = None,
        prefix: str | None = None,
    ) -> Sequence:
        """Rename a sequence or change its prefix.

        Raises:
            SequenceNotFoundError: If sequence_id does not resolve
            ValidationError: If the new name is empty
            ComplianceViolationError: If the prefix is locked
        """
        async with self._lock:
            sequence = self.store.require(sequence_id)
            changes: dict[str, str] = {}

            if name is not None:
                name = name.strip()
                if not name:
                    raise ValidationError("Sequence name is required", field_name="name")
                changes["name"] = name

            if prefix is not None:
                prefix = prefix.strip()
                self.guard.require(self.guard.check_prefix_change(sequence, prefix))
                changes["prefix"] = prefix

            if not changes:
                return sequence
            updated = self._persist(sequence.id, lambda s: s.evolve(**changes))

        logger.info(
            "Updated sequence",
            extra={"sequence_id": sequence.id, "fields": sorted(changes)},
        )
        return updated

    async def batch_update(self, sequence_id: str) -> BatchUpdateResult:
        """Rewrite every layer showing the current value with the next one.

        Matching is on trimmed, case-insensitive text content. Layers linked
        to this sequence get their link updated to the new value. When no
        layer matches, nothing changes.

        Every matching layer's typeface is loaded before the first write, so
        a failed load leaves all layers and the sequence as they were. If the
        matches change while loading, the new ones are loaded and the pass
        is repeated.

        Raises:
            SequenceNotFoundError: If sequence_id does not resolve
            ComplianceViolationError: For compliance sequences
        """
        fonts: dict[str, FontName] = {}

        while True:
            sequence = self.store.require(sequence_id)
            self.guard.require(self.guard.check_batch_update(sequence))
            for text in self.registry.find_text_elements_with_value(full_value(sequence)):
                if text.id not in fonts:
                    fonts[text.id] = await load_typeface(
                        text, self.typeface_loader, self.fallback_font
                    )

            async with self._lock:
                sequence = self.store.require(sequence_id)
                self.guard.require(self.guard.check_batch_update(sequence))

                current = full_value(sequence)
                upcoming = next_full_value(sequence)
                matches = self.registry.find_text_elements_with_value(current)
                if not matches:
                    return BatchUpdateResult(current, upcoming, 0, sequence)
                if any(text.id not in fonts for text in matches):
                    continue

                now = self._clock()
                for text in matches:
                    apply_typeface(text, fonts[text.id])
                    text.characters = upcoming
                    link = self.registry.get_link(text)
                    if link is not None and link.sequence_id == sequence.id:
                        self.registry.set_link(text, sequence.id, upcoming, stamped_at=now)

                def advance(s: Sequence) -> Sequence:
                    raw = increment_value(s.next_value, s.type)
                    highest = s.highest_used
                    if compare_values(raw, highest, s.type) > 0:
                        highest = raw
                    return s.evolve(next_value=raw, highest_used=highest)

                updated = self._persist(sequence.id, advance)
                break

        logger.info(
            "Batch updated layers",
            extra={"sequence_id": sequence.id, "count": len(matches), "value": upcoming},
        )
        return BatchUpdateResult(current, upcoming, len(matches), updated)
