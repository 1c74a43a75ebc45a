"""
Configuration management for Sequencer.

All configuration is done via environment variables.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local use
    - An empty store path means an in-memory (throwaway) document store

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep variable names prefixed with SEQUENCER_ except the shared
      LOG_LEVEL / LOG_FORMAT
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .document.tree import FontName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConfig:
    """Document store configuration.

    Attributes:
        store_path: SQLite file holding the document key-value store
            ("" keeps state in memory)
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    store_path: str = ""
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            store_path=os.getenv("SEQUENCER_STORE_PATH", ""),
            busy_timeout_ms=int(os.getenv("SEQUENCER_SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class TypefaceConfig:
    """Fallback typeface used when an element's typeface is ambiguous.

    Attributes:
        fallback_family: Font family
        fallback_style: Font style
    """

    fallback_family: str = "Inter"
    fallback_style: str = "Regular"

    @property
    def fallback(self) -> FontName:
        return FontName(self.fallback_family, self.fallback_style)

    @classmethod
    def from_env(cls) -> TypefaceConfig:
        """Load configuration from environment variables."""
        return cls(
            fallback_family=os.getenv("SEQUENCER_FALLBACK_FONT_FAMILY", "Inter"),
            fallback_style=os.getenv("SEQUENCER_FALLBACK_FONT_STYLE", "Regular"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class SequencerConfig:
    """Complete Sequencer configuration.

    Attributes:
        storage: Document store configuration
        typeface: Fallback typeface configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    typeface: TypefaceConfig = field(default_factory=TypefaceConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> SequencerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            typeface=TypefaceConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SEQUENCER_SQLITE_BUSY_TIMEOUT_MS must not be negative")
        if not self.typeface.fallback_family:
            raise ValueError("SEQUENCER_FALLBACK_FONT_FAMILY must not be empty")

        if not self.storage.store_path:
            logger.warning("No SEQUENCER_STORE_PATH set; sequence state will not persist")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Sequencer configuration loaded",
            extra={
                "store_path": self.storage.store_path or "(memory)",
                "fallback_font": f"{self.typeface.fallback_family} {self.typeface.fallback_style}",
                "log_level": self.observability.log_level,
                "log_format": self.observability.log_format,
            },
        )
