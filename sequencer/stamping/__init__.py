"""
Stamping module for Sequencer - mutating operations on sequences and links.
"""

from .orchestrator import (
    BatchUpdateResult,
    DeleteResult,
    StampingOrchestrator,
    StampResult,
    require_text_element,
)

__all__ = [
    "StampingOrchestrator",
    "StampResult",
    "DeleteResult",
    "BatchUpdateResult",
    "require_text_element",
]
