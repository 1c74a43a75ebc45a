"""
Drift auditing between persisted sequences and stamped content.

The document tree and the sequence store can drift apart:
- copy/paste duplicates a stamped value
- a sequence is deleted while elements still link to it
- an element is linked but was never stamped
- a stamped compliance value sits above its sequence's watermark
- the selected-sequence pointer references a deleted sequence

audit_document() scans both and reports every drift it finds. It never
repairs anything; reconciliation goes through the stamping orchestrator.

Invariants:
    - Auditing is read-only
    - Findings are ordered by kind, then by document traversal order
    - Duplicates and watermark drift of compliance sequences are violations

Example:
    >>> findings = audit_document(store, registry)
    >>> violations = [f for f in findings if f.is_violation]
    >>> if violations:
    ...     print("\\n".join(str(f) for f in violations))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto

from ..engine.increment import compare_values, is_valid_value, split_stamped_value
from ..links.registry import LinkRegistry
from ..store.sequence_store import SequenceStore

logger = logging.getLogger(__name__)


class DriftKind(Enum):
    """Kinds of drift between store and document."""

    DUPLICATE_STAMP = auto()
    BROKEN_LINK = auto()
    MISSING_STAMP = auto()
    WATERMARK_BEHIND = auto()
    STALE_SELECTION = auto()


@dataclass
class DriftFinding:
    """A single drift finding.

    Attributes:
        kind: The type of drift
        path: What drifted (e.g., "Sequence:Invoice#.value:INV-0099")
        message: Human-readable description
        element_ids: Elements involved, in traversal order
        sequence_id: Sequence involved, if any
        is_violation: Whether this breaks a compliance guarantee
    """

    kind: DriftKind
    path: str
    message: str
    element_ids: list[str] = field(default_factory=list)
    sequence_id: str | None = None
    is_violation: bool = False

    def __str__(self) -> str:
        status = "VIOLATION" if self.is_violation else "WARN"
        return f"[{status}] {self.kind.name}: {self.path} - {self.message}"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.name,
            "path": self.path,
            "message": self.message,
            "elementIds": list(self.element_ids),
            "sequenceId": self.sequence_id,
            "isViolation": self.is_violation,
        }


def audit_document(store: SequenceStore, registry: LinkRegistry) -> list[DriftFinding]:
    """Compare the sequence store with the stamped content of the document.

    Args:
        store: Sequence store for the document
        registry: Link registry over the document's current page

    Returns:
        List of DriftFinding objects (empty when consistent)
    """
    sequences = {s.id: s for s in store.list()}
    findings: list[DriftFinding] = []

    broken: dict[str, list[str]] = {}
    missing: dict[str, list[str]] = {}
    above_watermark: dict[tuple[str, str], list[str]] = {}

    for element in registry.iter_text_elements():
        link = registry.get_link(element)
        if link is None:
            continue

        sequence = sequences.get(link.sequence_id)
        if sequence is None:
            broken.setdefault(link.sequence_id, []).append(element.id)
            continue

        if not link.has_stamp:
            missing.setdefault(sequence.id, []).append(element.id)
            continue

        if sequence.is_compliance:
            raw = split_stamped_value(link.stamped_value, sequence.prefix)
            if raw is not None and is_valid_value(raw, sequence.type):
                if compare_values(raw, sequence.highest_used, sequence.type) > 0:
                    key = (sequence.id, link.stamped_value)
                    above_watermark.setdefault(key, []).append(element.id)

    for value, elements in registry.stamped_values().items():
        if len(elements) < 2:
            continue
        owners = {sequences.get(registry.get_link(e).sequence_id) for e in elements}
        owners.discard(None)
        is_violation = any(s.is_compliance for s in owners) if owners else False
        owner_names = ", ".join(sorted(s.name for s in owners)) or "deleted sequence"
        findings.append(
            DriftFinding(
                kind=DriftKind.DUPLICATE_STAMP,
                path=f"Value:{value}",
                message=f"'{value}' ({owner_names}) is stamped on {len(elements)} layers",
                element_ids=[e.id for e in elements],
                sequence_id=next(iter(owners)).id if len(owners) == 1 else None,
                is_violation=is_violation,
            )
        )

    for sequence_id, element_ids in broken.items():
        findings.append(
            DriftFinding(
                kind=DriftKind.BROKEN_LINK,
                path=f"Sequence:{sequence_id}",
                message=f"{len(element_ids)} layer(s) link to a deleted sequence",
                element_ids=element_ids,
                sequence_id=sequence_id,
            )
        )

    for sequence_id, element_ids in missing.items():
        sequence = sequences[sequence_id]
        findings.append(
            DriftFinding(
                kind=DriftKind.MISSING_STAMP,
                path=f"Sequence:{sequence.name}",
                message=f"{len(element_ids)} linked layer(s) were never stamped",
                element_ids=element_ids,
                sequence_id=sequence_id,
            )
        )

    for (sequence_id, value), element_ids in above_watermark.items():
        sequence = sequences[sequence_id]
        findings.append(
            DriftFinding(
                kind=DriftKind.WATERMARK_BEHIND,
                path=f"Sequence:{sequence.name}.value:{value}",
                message=(
                    f"Stamped value '{value}' is above the watermark "
                    f"'{sequence.highest_used or '(none)'}'"
                ),
                element_ids=element_ids,
                sequence_id=sequence_id,
                is_violation=True,
            )
        )

    selected_id = store.get_selected()
    if selected_id and selected_id not in sequences:
        findings.append(
            DriftFinding(
                kind=DriftKind.STALE_SELECTION,
                path=f"Selection:{selected_id}",
                message="Selected sequence no longer exists",
                sequence_id=selected_id,
            )
        )

    if findings:
        logger.info(
            "Drift audit found issues",
            extra={
                "findings": len(findings),
                "violations": sum(1 for f in findings if f.is_violation),
            },
        )
    return findings
