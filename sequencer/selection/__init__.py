"""
Selection module for Sequencer - derived UI state of the selection.
"""

from .analyzer import SelectionAnalyzer, SelectionKind, SelectionState

__all__ = ["SelectionAnalyzer", "SelectionKind", "SelectionState"]
