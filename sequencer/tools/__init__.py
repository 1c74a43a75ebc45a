"""Command-line tools for Sequencer."""
