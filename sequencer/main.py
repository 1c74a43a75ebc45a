"""
Sequencer HTTP bridge entry point.

Usage:
    python -m sequencer.main

Or with configuration:
    SEQUENCER_STORE_PATH=./doc.db SEQUENCER_HTTP_PORT=8765 python -m sequencer.main
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn

from .config import SequencerConfig

logger = logging.getLogger(__name__)


def setup_logging(config: SequencerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Sequencer configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> int:
    """Main entry point."""
    try:
        config = SequencerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config)
    config.log_config()

    from .api.http_app import HttpSettings, create_app

    settings = HttpSettings()
    logger.info(f"Starting Sequencer bridge on {settings.host}:{settings.port}")
    uvicorn.run(create_app(config, settings), host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
