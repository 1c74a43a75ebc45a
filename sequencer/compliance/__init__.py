"""
Compliance module for Sequencer - governance of issued identifiers.

This module handles:
- Allow/deny decisions for destructive operations (ComplianceGuard)
- Drift auditing between the sequence store and stamped content

Invariants:
    - Compliance watermarks never decrease
    - A unique stamped compliance value is never overwritten
    - Guard checks are pure; callers gate before mutating
"""

from .audit import DriftFinding, DriftKind, audit_document
from .guard import ComplianceGuard, Decision, Operation, get_compliance_guard

__all__ = [
    "ComplianceGuard",
    "Decision",
    "Operation",
    "get_compliance_guard",
    "DriftFinding",
    "DriftKind",
    "audit_document",
]
