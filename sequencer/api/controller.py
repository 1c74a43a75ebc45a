"""
Plugin controller for Sequencer.

The controller is the message boundary between the plugin UI and the
engine. It owns one document session:

    UI --inbound message--> handle_message --> orchestrator / store
    UI <--outbound messages-- post_message

On startup it migrates persisted state, resolves the selected sequence
and posts "init". It then posts "selection-state" whenever the document
selection changes and after every message that may have changed what
the selection shows.

Invariants:
    - Every inbound message produces either its result message or "error"
    - Errors never escape handle_message; they are posted with a code
    - The controller never mutates links or element text directly

How to change safely:
    - Add a pydantic model in messages.py and a handler in _dispatch
    - Keep outbound payload keys camelCase
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ..compliance.guard import ComplianceGuard
from ..document.tree import Document, FontName
from ..document.typeface import DEFAULT_FONT, InstantTypefaceLoader, TypefaceLoader
from ..errors import SequencerError
from ..links.registry import LinkRegistry
from ..selection.analyzer import SelectionAnalyzer
from ..stamping.orchestrator import StampingOrchestrator, require_text_element
from ..store.kv import KeyValueStore
from ..store.migrations import MigrationReport
from ..store.sequence_store import SequenceStore
from . import messages as m

logger = logging.getLogger(__name__)

PostMessage = Callable[[dict[str, Any]], None]

# Messages after which the selection view may be stale.
_REFRESH_AFTER = frozenset(
    {
        "create-sequence",
        "update-sequence",
        "delete-sequence",
        "link-and-stamp",
        "stamp",
        "unlink",
        "relink",
        "reset",
        "update",
    }
)


class PluginController:
    """Dispatches UI messages for one document.

    Example:
        >>> controller = PluginController(kv, document, post_message=ui.post)
        >>> controller.start()
        >>> await controller.handle_message({"type": "link-and-stamp", "sequenceId": seq_id})
    """

    def __init__(
        self,
        kv: KeyValueStore,
        document: Document,
        typeface_loader: TypefaceLoader | None = None,
        post_message: PostMessage | None = None,
        close_plugin: Callable[[], None] | None = None,
        fallback_font: FontName = DEFAULT_FONT,
        guard: ComplianceGuard | None = None,
        store: SequenceStore | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            kv: Document key-value store holding sequence state
            document: The open document
            typeface_loader: Host typeface loader
            post_message: Sink for outbound messages
            close_plugin: Called on "close"
            fallback_font: Typeface used when an element's is ambiguous
            guard: Compliance guard instance
            store: Preconfigured sequence store (built from kv otherwise)
        """
        self.document = document
        self.store = store or SequenceStore(kv)
        self.registry = LinkRegistry(document)
        self.analyzer = SelectionAnalyzer(self.store, self.registry)
        self.orchestrator = StampingOrchestrator(
            self.store,
            self.registry,
            typeface_loader or InstantTypefaceLoader(),
            guard=guard,
            fallback_font=fallback_font,
        )
        self._post = post_message
        self._close_plugin = close_plugin
        self._outbox: list[dict[str, Any]] = []
        self._unsubscribe: Callable[[], None] | None = None
        self.closed = False

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> MigrationReport:
        """Migrate persisted state, post "init" and watch the selection."""
        report = self.store.migrate()
        selected = self.store.resolve_selected()

        self._emit(
            {
                "type": "init",
                "sequences": self._sequences_payload(),
                "selectedId": selected.id if selected else None,
                "selectedSequence": m.sequence_payload(selected),
            }
        )
        self._emit_selection_state()

        if self._unsubscribe is None:
            self._unsubscribe = self.document.on_selection_change(
                lambda _selection: self._emit_selection_state()
            )

        logger.info(
            "Plugin started",
            extra={
                "document": self.document.name,
                "sequences": len(self.store.list()),
                "migrated": report.changed,
            },
        )
        return report

    def stop(self) -> None:
        """Stop watching the selection."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # -- messaging ----------------------------------------------------------

    def drain(self) -> list[dict[str, Any]]:
        """Return and clear messages emitted since the last drain."""
        out, self._outbox = self._outbox, []
        return out

    def _emit(self, message: dict[str, Any]) -> None:
        self._outbox.append(message)
        if self._post is not None:
            self._post(message)

    def _emit_selection_state(self) -> None:
        self._emit(self.analyzer.analyze_document().to_message())

    def _emit_error(self, error: SequencerError) -> None:
        message: dict[str, Any] = {
            "type": "error",
            "message": error.message,
            "code": error.code,
        }
        if error.details:
            message["details"] = error.details
        self._emit(message)

    def _sequences_payload(self) -> list[dict[str, Any]]:
        return [m.sequence_payload(s) for s in self.store.list()]

    async def handle_message(self, raw: Any) -> list[dict[str, Any]]:
        """Validate and dispatch one inbound message.

        Args:
            raw: Decoded JSON message from the UI

        Returns:
            Outbound messages emitted while handling it
        """
        start = len(self._outbox)
        msg_type = raw.get("type") if isinstance(raw, dict) else None

        try:
            message = m.parse_message(raw)
            await self._dispatch(message)
        except SequencerError as e:
            logger.warning(
                f"Message {msg_type} failed: {e.message}",
                extra={"message_type": msg_type, "code": e.code},
            )
            self._emit_error(e)
        except Exception as e:
            logger.error(f"Unexpected error handling {msg_type}: {e}", exc_info=True)
            self._emit_error(SequencerError(f"Unexpected error: {e}", code="INTERNAL"))

        if msg_type in _REFRESH_AFTER and not self.closed:
            self._emit_selection_state()

        emitted = self._outbox[start:]
        del self._outbox[start:]
        return emitted

    async def _dispatch(self, message: Any) -> None:
        if isinstance(message, m.SelectSequence):
            sequence = self.store.require(message.id)
            self.store.set_selected(sequence.id)
            self._emit({"type": "sequence-selected", "sequence": m.sequence_payload(sequence)})

        elif isinstance(message, m.CreateSequence):
            sequence = self.store.create(
                message.name,
                message.value,
                prefix=message.prefix,
                seq_type=message.sequence_type,
                mode=message.mode,
            )
            self._emit(
                {
                    "type": "sequence-created",
                    "sequence": m.sequence_payload(sequence),
                    "sequences": self._sequences_payload(),
                    "selectedId": sequence.id,
                }
            )

        elif isinstance(message, m.UpdateSequence):
            sequence = await self.orchestrator.update_sequence(
                message.id, name=message.name, prefix=message.prefix
            )
            self._emit(
                {
                    "type": "sequence-updated",
                    "sequence": m.sequence_payload(sequence),
                    "sequences": self._sequences_payload(),
                }
            )

        elif isinstance(message, m.DeleteSequence):
            result = await self.orchestrator.delete_sequence(message.id)
            self._emit(
                {
                    "type": "sequence-deleted",
                    "sequenceId": result.sequence_id,
                    "sequences": self._sequences_payload(),
                    "selectedId": result.selected.id if result.selected else None,
                    "selectedSequence": m.sequence_payload(result.selected),
                }
            )

        elif isinstance(message, (m.LinkAndStamp, m.Stamp)):
            element = self._single_selection()
            sequence_id = message.sequence_id
            if not sequence_id:
                link = self.registry.get_link(require_text_element(element))
                sequence_id = link.sequence_id if link else None
            if not sequence_id:
                selected = self.store.resolve_selected()
                sequence_id = selected.id if selected else None
            result = await self.orchestrator.stamp_or_link(element, sequence_id)
            self._emit(
                {
                    "type": "stamped",
                    "value": result.value,
                    "elementId": result.element_id,
                    "sequence": m.sequence_payload(result.sequence),
                    "sequences": self._sequences_payload(),
                }
            )

        elif isinstance(message, m.Unlink):
            element = self._single_selection()
            await self.orchestrator.unlink(element)
            self._emit({"type": "unlinked", "elementId": element.id})

        elif isinstance(message, m.Relink):
            element = self._single_selection()
            link = await self.orchestrator.relink(element, message.sequence_id)
            self._emit(
                {
                    "type": "relinked",
                    "elementId": element.id,
                    "sequence": m.sequence_payload(self.store.get(link.sequence_id)),
                    "stampedValue": link.stamped_value,
                }
            )

        elif isinstance(message, m.Reset):
            sequence = await self.orchestrator.reset(message.sequence_id, message.value)
            self._emit(
                {
                    "type": "reset-done",
                    "sequence": m.sequence_payload(sequence),
                    "sequences": self._sequences_payload(),
                }
            )

        elif isinstance(message, m.BatchUpdate):
            result = await self.orchestrator.batch_update(message.sequence_id)
            if result.count == 0:
                self._emit(
                    {
                        "type": "info",
                        "message": f"No layers found showing '{result.previous_value}'",
                    }
                )
                return
            self._emit(
                {
                    "type": "updated",
                    "count": result.count,
                    "value": result.value,
                    "sequence": m.sequence_payload(result.sequence),
                    "sequences": self._sequences_payload(),
                }
            )

        elif isinstance(message, m.Close):
            self.stop()
            self.closed = True
            if self._close_plugin is not None:
                self._close_plugin()

    def _single_selection(self) -> Any:
        selection = self.document.selection
        return selection[0] if len(selection) == 1 else None
