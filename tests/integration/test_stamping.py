"""
Integration tests for the stamping orchestrator.

Tests cover:
- Stamping in compliance and design mode
- Re-stamp protection and duplicate tie-breaking
- Reset, delete and prefix changes under the compliance guard
- Unlink, relink and batch update
- Typeface fallback, persistence failures and serialized concurrency
"""

import asyncio

import pytest

from sequencer.compliance import audit_document
from sequencer.document import MIXED, FontName, InstantTypefaceLoader, TextElement
from sequencer.engine import SequenceMode, SequenceType
from sequencer.errors import (
    ComplianceViolationError,
    InvalidSelectionError,
    PersistenceError,
    SequenceNotFoundError,
    ValidationError,
)
from sequencer.selection import SelectionAnalyzer, SelectionKind
from sequencer.stamping import StampingOrchestrator
from sequencer.store import SEQUENCES_KEY, InMemoryKeyValueStore, SequenceStore


class SlowTypefaceLoader(InstantTypefaceLoader):
    """Loader that yields to the event loop before completing."""

    async def load(self, font):
        await asyncio.sleep(0.01)
        await super().load(font)


class StalledTypefaceLoader(InstantTypefaceLoader):
    """Loader whose loads never complete."""

    async def load(self, font):
        await asyncio.Event().wait()


class UnavailableTypefaceLoader(InstantTypefaceLoader):
    """Loader that fails for one typeface."""

    def __init__(self, unavailable):
        super().__init__()
        self.unavailable = unavailable

    async def load(self, font):
        if font == self.unavailable:
            raise OSError(f"{font.family} {font.style} unavailable")
        await super().load(font)


class FailingKeyValueStore(InMemoryKeyValueStore):
    """Key-value store whose sequence writes fail once armed."""

    def __init__(self):
        super().__init__()
        self.armed = False

    def set(self, key, value):
        if self.armed and key == SEQUENCES_KEY:
            raise OSError("disk full")
        super().set(key, value)


@pytest.fixture
def loader():
    return InstantTypefaceLoader()


@pytest.fixture
def orchestrator(store, registry, loader, clock):
    return StampingOrchestrator(store, registry, loader, clock=clock)


@pytest.fixture
def invoice(store):
    return store.create(name="Invoice#", next_value="0099", prefix="INV-")


@pytest.fixture
def label(document):
    return document.find_by_id("label_a")


class TestStamp:
    """Tests for stamp_or_link."""

    @pytest.mark.asyncio
    async def test_compliance_stamp(self, orchestrator, registry, store, invoice, label):
        """First stamp writes the value, advances and locks the sequence."""
        result = await orchestrator.stamp_or_link(label, invoice.id)

        assert result.value == "INV-0099"
        assert label.characters == "INV-0099"
        assert result.sequence.next_value == "0100"
        assert result.sequence.highest_used == "0099"
        assert result.sequence.locked is True
        assert store.get(invoice.id) == result.sequence

        link = registry.get_link(label)
        assert link.sequence_id == invoice.id
        assert link.stamped_value == "INV-0099"
        assert link.stamped_at > 0

    @pytest.mark.asyncio
    async def test_restamp_unique_compliance_value_rejected(
        self, orchestrator, store, invoice, label
    ):
        await orchestrator.stamp_or_link(label, invoice.id)

        with pytest.raises(ComplianceViolationError):
            await orchestrator.stamp_or_link(label, invoice.id)

        assert label.characters == "INV-0099"
        assert store.get(invoice.id).next_value == "0100"

    @pytest.mark.asyncio
    async def test_design_letter_stamp(self, orchestrator, store, label):
        sheet = store.create(
            name="Sheet",
            next_value="Z",
            seq_type=SequenceType.LETTER,
            mode=SequenceMode.DESIGN,
        )

        result = await orchestrator.stamp_or_link(label, sheet.id)

        assert label.characters == "Z"
        assert result.sequence.next_value == "AA"
        assert result.sequence.highest_used == "Z"
        assert result.sequence.locked is False

    @pytest.mark.asyncio
    async def test_design_restamp_allowed(self, orchestrator, store, label):
        mock = store.create(name="Mock", next_value="1", mode=SequenceMode.DESIGN)
        await orchestrator.stamp_or_link(label, mock.id)

        result = await orchestrator.stamp_or_link(label, mock.id)

        assert label.characters == "2"
        assert result.sequence.next_value == "3"

    @pytest.mark.asyncio
    async def test_duplicate_can_be_restamped(
        self, orchestrator, store, registry, document, invoice, label
    ):
        """Copy/paste creates a duplicate; re-stamping one copy breaks the tie."""
        await orchestrator.stamp_or_link(label, invoice.id)
        copy = document.duplicate(label)
        analyzer = SelectionAnalyzer(store, registry)

        for element in (label, copy):
            state = analyzer.analyze([element])
            assert state.kind == SelectionKind.NEEDS_STAMP
            assert state.is_duplicate

        result = await orchestrator.stamp_or_link(copy, invoice.id)

        assert result.value == "INV-0100"
        assert analyzer.analyze([label]).kind == SelectionKind.STAMPED
        assert analyzer.analyze([copy]).kind == SelectionKind.STAMPED
        assert audit_document(store, registry) == []

    @pytest.mark.asyncio
    async def test_restamp_checks_owning_sequence(self, orchestrator, store, invoice, label):
        """A value stamped by a compliance sequence stays protected from other sequences."""
        await orchestrator.stamp_or_link(label, invoice.id)
        mock = store.create(name="Mock", next_value="1", mode=SequenceMode.DESIGN)

        with pytest.raises(ComplianceViolationError):
            await orchestrator.stamp_or_link(label, mock.id)

    @pytest.mark.asyncio
    async def test_linked_but_unstamped_element(self, orchestrator, registry, invoice, label):
        registry.set_link(label, invoice.id, "")
        result = await orchestrator.stamp_or_link(label, invoice.id)
        assert result.value == "INV-0099"

    @pytest.mark.asyncio
    async def test_stamps_are_monotonic(self, orchestrator, store, document, invoice):
        values = []
        for _ in range(5):
            element = document.current_page.append_child(TextElement(font_name=FontName("Inter")))
            values.append((await orchestrator.stamp_or_link(element, invoice.id)).value)

        assert values == ["INV-0099", "INV-0100", "INV-0101", "INV-0102", "INV-0103"]
        assert store.get(invoice.id).highest_used == "0103"

    @pytest.mark.asyncio
    async def test_non_text_selection_rejected(self, orchestrator, document, invoice):
        with pytest.raises(InvalidSelectionError):
            await orchestrator.stamp_or_link(document.find_by_id("rect"), invoice.id)
        with pytest.raises(InvalidSelectionError):
            await orchestrator.stamp_or_link(None, invoice.id)

    @pytest.mark.asyncio
    async def test_unknown_sequence(self, orchestrator, label):
        with pytest.raises(SequenceNotFoundError):
            await orchestrator.stamp_or_link(label, "seq_gone")
        assert label.characters == "Invoice number"

    @pytest.mark.asyncio
    async def test_concurrent_stamps_are_serialized(self, store, registry, document, invoice):
        orchestrator = StampingOrchestrator(store, registry, SlowTypefaceLoader())
        a = document.find_by_id("label_a")
        b = document.find_by_id("label_b")

        results = await asyncio.gather(
            orchestrator.stamp_or_link(a, invoice.id),
            orchestrator.stamp_or_link(b, invoice.id),
        )

        assert sorted(r.value for r in results) == ["INV-0099", "INV-0100"]
        assert store.get(invoice.id).next_value == "0101"

    @pytest.mark.asyncio
    async def test_stalled_typeface_load_blocks_only_its_stamp(
        self, store, registry, document, invoice
    ):
        orchestrator = StampingOrchestrator(store, registry, StalledTypefaceLoader())
        mock = store.create(name="Mock", next_value="10", mode=SequenceMode.DESIGN)
        label = document.find_by_id("label_a")
        stalled = asyncio.create_task(orchestrator.stamp_or_link(label, invoice.id))
        await asyncio.sleep(0)

        updated = await asyncio.wait_for(orchestrator.reset(mock.id, "0500"), timeout=1)
        renamed = await asyncio.wait_for(
            orchestrator.update_sequence(invoice.id, name="Invoices"), timeout=1
        )

        assert updated.next_value == "0500"
        assert renamed.name == "Invoices"
        assert not stalled.done()
        assert label.characters == "Invoice number"
        assert store.get(invoice.id).next_value == "0099"

        stalled.cancel()
        with pytest.raises(asyncio.CancelledError):
            await stalled


class TestTypeface:
    """Tests for typeface readiness during text writes."""

    @pytest.mark.asyncio
    async def test_loads_element_typeface(self, orchestrator, loader, invoice, label):
        await orchestrator.stamp_or_link(label, invoice.id)
        assert loader.loaded == [FontName("Inter", "Bold")]

    @pytest.mark.asyncio
    async def test_mixed_typeface_uses_fallback(self, store, registry, document, invoice):
        loader = InstantTypefaceLoader()
        fallback = FontName("Roboto", "Regular")
        orchestrator = StampingOrchestrator(store, registry, loader, fallback_font=fallback)
        element = document.current_page.append_child(TextElement("", font_name=MIXED))

        result = await orchestrator.stamp_or_link(element, invoice.id)

        assert result.value == "INV-0099"
        assert loader.loaded == [fallback]
        assert element.font_name == fallback
        assert element.characters == "INV-0099"


class TestPersistenceFailure:
    """Tests for failed sequence writes."""

    @pytest.mark.asyncio
    async def test_failed_persist_is_reported(self, registry, document, loader):
        kv = FailingKeyValueStore()
        store = SequenceStore(kv)
        store.migrate()
        invoice = store.create(name="Invoice#", next_value="0099", prefix="INV-")
        orchestrator = StampingOrchestrator(store, registry, loader)
        label = document.find_by_id("label_a")
        kv.armed = True

        with pytest.raises(PersistenceError):
            await orchestrator.stamp_or_link(label, invoice.id)

        # The text was already written; the stored sequence did not advance
        assert label.characters == "INV-0099"
        assert store.get(invoice.id).next_value == "0099"
        assert registry.get_link(label).stamped_value == "INV-0099"


class TestReset:
    """Tests for reset."""

    @pytest.fixture
    def issued(self, store, invoice):
        return store.update(
            invoice.id, lambda s: s.evolve(next_value="0051", highest_used="0050", locked=True)
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["0050", "0030"])
    async def test_reset_at_or_below_watermark_rejected(self, orchestrator, store, issued, value):
        with pytest.raises(ComplianceViolationError):
            await orchestrator.reset(issued.id, value)

        assert store.get(issued.id).next_value == "0051"
        assert store.get(issued.id).highest_used == "0050"

    @pytest.mark.asyncio
    async def test_reset_above_watermark(self, orchestrator, issued):
        updated = await orchestrator.reset(issued.id, "0051")
        assert updated.next_value == "0051"

    @pytest.mark.asyncio
    async def test_reset_can_skip_ahead(self, orchestrator, store, issued):
        await orchestrator.reset(issued.id, " 0200 ")
        assert store.get(issued.id).next_value == "0200"
        assert store.get(issued.id).highest_used == "0050"

    @pytest.mark.asyncio
    async def test_reset_validates_value(self, orchestrator, issued):
        with pytest.raises(ValidationError):
            await orchestrator.reset(issued.id, "5x")

    @pytest.mark.asyncio
    async def test_design_reset_may_go_back(self, orchestrator, store):
        mock = store.create(name="Mock", next_value="10", mode=SequenceMode.DESIGN)
        updated = await orchestrator.reset(mock.id, "1")
        assert updated.next_value == "1"


class TestDeleteAndUpdate:
    """Tests for delete_sequence and update_sequence."""

    @pytest.mark.asyncio
    async def test_delete_unlinked_compliance_sequence(self, orchestrator, store, invoice):
        result = await orchestrator.delete_sequence(invoice.id)
        assert result.sequence_id == invoice.id
        assert result.selected is None
        assert store.list() == []

    @pytest.mark.asyncio
    async def test_delete_linked_compliance_sequence_rejected(
        self, orchestrator, store, invoice, label
    ):
        await orchestrator.stamp_or_link(label, invoice.id)

        with pytest.raises(ComplianceViolationError) as exc_info:
            await orchestrator.delete_sequence(invoice.id)

        assert "1 layer" in exc_info.value.message
        assert store.get(invoice.id) is not None

    @pytest.mark.asyncio
    async def test_delete_design_sequence_leaves_broken_links(
        self, orchestrator, store, registry, label
    ):
        mock = store.create(name="Mock", next_value="1", mode=SequenceMode.DESIGN)
        await orchestrator.stamp_or_link(label, mock.id)

        await orchestrator.delete_sequence(mock.id)

        assert registry.get_link(label).sequence_id == mock.id
        state = SelectionAnalyzer(store, registry).analyze([label])
        assert state.kind == SelectionKind.BROKEN_LINK

    @pytest.mark.asyncio
    async def test_delete_selects_remaining(self, orchestrator, store, invoice):
        other = store.create(name="PO", next_value="1")
        result = await orchestrator.delete_sequence(other.id)
        assert result.selected == invoice
        assert store.get_selected() == invoice.id

    @pytest.mark.asyncio
    async def test_rename_locked_sequence(self, orchestrator, invoice, label):
        await orchestrator.stamp_or_link(label, invoice.id)
        updated = await orchestrator.update_sequence(invoice.id, name="Invoices 2024")
        assert updated.name == "Invoices 2024"

    @pytest.mark.asyncio
    async def test_prefix_locked_after_stamp(self, orchestrator, invoice, label):
        updated = await orchestrator.update_sequence(invoice.id, prefix="INVOICE-")
        assert updated.prefix == "INVOICE-"

        await orchestrator.stamp_or_link(label, invoice.id)

        with pytest.raises(ComplianceViolationError):
            await orchestrator.update_sequence(invoice.id, prefix="INV-")

    @pytest.mark.asyncio
    async def test_empty_name_rejected(self, orchestrator, invoice):
        with pytest.raises(ValidationError):
            await orchestrator.update_sequence(invoice.id, name="  ")


class TestLinks:
    """Tests for unlink and relink."""

    @pytest.mark.asyncio
    async def test_unlink_keeps_text(self, orchestrator, registry, invoice, label):
        await orchestrator.stamp_or_link(label, invoice.id)

        await orchestrator.unlink(label)

        assert registry.get_link(label) is None
        assert label.characters == "INV-0099"

    @pytest.mark.asyncio
    async def test_relink_broken_link(self, orchestrator, store, registry, invoice, label):
        registry.set_link(label, "seq_gone", "PO-0007", stamped_at=42)

        link = await orchestrator.relink(label, invoice.id)

        assert link.sequence_id == invoice.id
        assert link.stamped_value == "PO-0007"
        assert link.stamped_at == 42
        assert store.get(invoice.id).next_value == "0099"

    @pytest.mark.asyncio
    async def test_relink_requires_existing_link(self, orchestrator, invoice, label):
        with pytest.raises(InvalidSelectionError):
            await orchestrator.relink(label, invoice.id)

    @pytest.mark.asyncio
    async def test_relink_to_unknown_sequence(self, orchestrator, registry, label):
        registry.set_link(label, "seq_gone", "PO-0007")
        with pytest.raises(SequenceNotFoundError):
            await orchestrator.relink(label, "seq_missing")


class TestBatchUpdate:
    """Tests for batch_update."""

    @pytest.fixture
    def mock(self, store):
        return store.create(name="Mock", next_value="0007", prefix="PO-", mode=SequenceMode.DESIGN)

    @pytest.mark.asyncio
    async def test_rewrites_matching_layers(self, orchestrator, registry, document, mock):
        a = document.find_by_id("label_a")
        b = document.find_by_id("label_b")
        a.characters = "po-0007 "
        b.characters = "PO-0007"
        registry.set_link(b, mock.id, "PO-0007")

        result = await orchestrator.batch_update(mock.id)

        assert result.count == 2
        assert result.previous_value == "PO-0007"
        assert result.value == "PO-0008"
        assert a.characters == b.characters == "PO-0008"
        assert registry.get_link(a) is None
        assert registry.get_link(b).stamped_value == "PO-0008"
        assert result.sequence.next_value == "0008"
        assert result.sequence.highest_used == "0008"

    @pytest.mark.asyncio
    async def test_no_matches_changes_nothing(self, orchestrator, store, mock):
        result = await orchestrator.batch_update(mock.id)
        assert result.count == 0
        assert store.get(mock.id) == mock

    @pytest.mark.asyncio
    async def test_compliance_sequence_rejected(self, orchestrator, document, invoice):
        document.find_by_id("label_b").characters = "INV-0099"
        with pytest.raises(ComplianceViolationError):
            await orchestrator.batch_update(invoice.id)
        assert document.find_by_id("label_b").characters == "INV-0099"

    @pytest.mark.asyncio
    async def test_failed_typeface_load_rewrites_nothing(self, store, registry, document, mock):
        loader = UnavailableTypefaceLoader(FontName("Inter", "Regular"))
        orchestrator = StampingOrchestrator(store, registry, loader)
        a = document.find_by_id("label_a")
        b = document.find_by_id("label_b")
        a.characters = b.characters = "PO-0007"
        registry.set_link(a, mock.id, "PO-0007", stamped_at=42)

        with pytest.raises(OSError):
            await orchestrator.batch_update(mock.id)

        assert a.characters == b.characters == "PO-0007"
        assert registry.get_link(a).stamped_at == 42
        assert store.get(mock.id) == mock

        loader.unavailable = None
        result = await orchestrator.batch_update(mock.id)

        assert result.count == 2
        assert a.characters == b.characters == "PO-0008"
        assert result.sequence.next_value == "0008"
