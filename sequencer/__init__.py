"""
Sequencer - named identifier sequences stamped into document text.

This package maintains ordered identifier sequences (numbers or letters)
and stamps them into text elements of a document tree under one of two
governance modes:
- design: unrestricted numbering for non-binding use
- compliance: tamper-resistant numbering for invoices, POs, revisions

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌────────────────┐
    │  UI / HTTP  │────▶│  Controller  │────▶│  Orchestrator  │
    └─────────────┘     └──────┬───────┘     └───────┬────────┘
                               │                     │
                               ▼                     ▼
                        ┌─────────────┐      ┌───────────────┐
                        │  Selection  │      │  Compliance   │
                        │  Analyzer   │      │  Guard        │
                        └──────┬──────┘      └───────┬───────┘
                               │                     │
                 ┌─────────────┼─────────────────────┤
                 ▼             ▼                     ▼
          ┌────────────┐ ┌────────────┐      ┌───────────────┐
          │  Document  │ │   Link     │      │   Sequence    │
          │  Tree      │ │  Registry  │      │   Store (KV)  │
          └────────────┘ └────────────┘      └───────────────┘

Invariants:
    - The document tree is the source of truth for what was stamped
    - Compliance watermarks (highest_used) never decrease
    - Links are weak references; deleting a sequence never cascades
    - Every store mutation rewrites the full sequence collection

How to change safely:
    - Persisted record keys are camelCase and must stay readable
    - New persisted fields need a migration step and a version bump
    - Never relax a compliance check without an audit finding for it
"""

from ._version import __version__

__all__ = ["__version__"]
