"""
Sequencer Test Suite.

This package contains:
- unit/: Unit tests (no I/O beyond temporary SQLite files)
- integration/: Integration tests (orchestrator, controller, HTTP bridge, CLI)
"""
