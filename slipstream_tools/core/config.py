"""Configuration management for slipstream-tools."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from slipstream_tools.core.catalog import DEFAULT_CATALOG_PATH

logger = structlog.get_logger()


def _default_media_roots() -> list[Path]:
    if os.name == "nt":
        return [Path(f"{letter}:\\") for letter in "DEFGHIJKLMNOPQRSTUVWXYZ"]
    return [Path("/media"), Path("/mnt"), Path("/cdrom")]


def _default_destination() -> Path:
    if os.name == "nt":
        return Path("C:\\SP\\2010")
    return Path.home() / "SP" / "2010"


class FetchConfig(BaseModel):
    """Download configuration."""

    timeout: float = Field(default=60.0, description="Request timeout in seconds")
    max_retries: int = Field(default=5, description="Maximum attempts per download")
    backoff: float = Field(default=2.0, description="Base delay between attempts in seconds")
    chunk_size: int = Field(default=1024 * 1024, description="Streaming chunk size in bytes")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate max retries value."""
        if v < 1:
            raise ValueError("Max retries must be at least 1")
        return v

    @field_validator("backoff")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        """Validate backoff value."""
        if v < 0:
            raise ValueError("Backoff must be non-negative")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Validate chunk size value."""
        if v <= 0:
            raise ValueError("Chunk size must be positive")
        return v


class ExpandConfig(BaseModel):
    """Archive and patch-installer expansion configuration."""

    timeout: float = Field(default=3600.0, description="Patch extraction timeout in seconds")
    log_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()),
        description="Directory patch installers write their logs to",
    )
    log_pattern: str = Field(
        default="opatchinstall*.log",
        description="Glob matching patch installer logs",
    )
    failure_marker: str = Field(
        default="Extraction failed",
        description="Log text that marks a failed extraction",
    )

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class AppConfig(BaseModel):
    """Application configuration."""

    catalog_path: Path = Field(
        default=DEFAULT_CATALOG_PATH,
        description="Update catalog file",
    )
    default_destination: Path = Field(
        default_factory=_default_destination,
        description="Destination used when none is given",
    )
    media_roots: list[Path] = Field(
        default_factory=_default_media_roots,
        description="Roots probed for installation media, in order",
    )

    fetch: FetchConfig = Field(default_factory=FetchConfig)
    expand: ExpandConfig = Field(default_factory=ExpandConfig)

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "slipstream-tools" / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file
        """
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
