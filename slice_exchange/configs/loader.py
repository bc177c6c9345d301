"""Configuration loader for the slice codec.

Loads and validates ``codec.yaml`` into pydantic models.  Formatting,
diagnostic and progress settings come from the config; the CLI grammar
itself is fixed in code.

Usage::

    from slice_exchange.configs.loader import configure_logging, load_config
    cfg = load_config()                     # default path
    cfg = load_config("/custom/codec.yaml") # explicit path
    configure_logging(cfg, app="convert")   # handlers from the logging section
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from slice_exchange.utils.fs import load_yaml
from slice_exchange.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "codec.yaml"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Schema -- mirrors the YAML structure
# ---------------------------------------------------------------------------


class GeometryConfig(BaseModel):
    """Winding classification settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    winding_epsilon: float = Field(
        1e-10, ge=0.0, description="Near-zero area threshold (squared working units)"
    )


class EncoderConfig(BaseModel):
    """CLI writer settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    version_tag: int = Field(200, ge=0, description="Value written to $$VERSION")
    object_id: int = Field(1, ge=0, description="Id written to $$LABEL and $$POLYLINE")
    object_name: str = Field("default", min_length=1, description="Name written to $$LABEL")
    decimals: int = Field(5, ge=1, le=12, description="Decimal places for coordinates")
    progress_interval_s: float = Field(1.0, ge=0.0, description="Progress throttle (s)")

    @field_validator("object_name")
    @classmethod
    def validate_object_name(cls, v: str) -> str:
        if not v.isascii():
            raise ValueError(f"object_name must be ASCII, got {v!r}")
        for forbidden in ("$", "/", ",", "\n", "\r"):
            if forbidden in v:
                raise ValueError(
                    f"object_name must not contain {forbidden!r}, got {v!r}"
                )
        return v


class DecoderConfig(BaseModel):
    """CLI reader settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    progress_interval_s: float = Field(1.0, ge=0.0, description="Progress throttle (s)")
    vertex_progress_step: int = Field(
        10000, ge=1, description="Vertices between progress reports in long polylines"
    )
    warning_text_max_chars: int = Field(
        20, ge=4, description="Directive text kept in warnings"
    )


class LoggingConfig(BaseModel):
    """Keyword arguments for ``utils.logging_config.setup_logging``."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    log_level: str = "INFO"
    log_file: Optional[str] = None
    json_lines: bool = Field(False, alias="json", description="JSON file log format")
    color: bool = True
    to_stderr: bool = True
    tz: str = "UTC"

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got '{v}'")
        return v.upper()

    @field_validator("tz")
    @classmethod
    def validate_tz(cls, v: str) -> str:
        if v not in ("UTC", "local"):
            raise ValueError(f"tz must be 'UTC' or 'local', got '{v}'")
        return v

    def as_setup_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``setup_logging``, keyed by parameter name."""
        return self.model_dump(by_alias=True)


class CodecConfigV1(BaseModel):
    """Codec configuration schema v1."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    schema_version: str = Field("codec.v1", alias="schema", description="Schema version")
    geometry: GeometryConfig = GeometryConfig()
    encoder: EncoderConfig = EncoderConfig()
    decoder: DecoderConfig = DecoderConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("schema_version")
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "codec.v1":
            raise ValueError(f"Expected schema 'codec.v1', got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> CodecConfigV1:
    """Load and validate codec configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``codec.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    CodecConfigV1
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field fails validation or the file is empty.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.debug("Loading codec configuration from %s", path)

    data: Any = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")
    if not isinstance(data, dict):
        raise ConfigError(
            f"Configuration root must be a mapping, got {type(data).__name__}: {path}"
        )

    try:
        return CodecConfigV1(**data)
    except ValidationError as exc:
        raise ConfigError(
            f"Codec config validation failed at {path}: {exc}"
        ) from exc


@lru_cache(maxsize=1)
def default_config() -> CodecConfigV1:
    """Shipped ``codec.yaml``, loaded once per process."""
    return load_config()


def configure_logging(
    config: Optional[CodecConfigV1] = None,
    **context: Any,
) -> dict[str, Any]:
    """Install logging handlers from the ``logging`` section.

    *context* becomes contextual fields on every record, e.g.
    ``configure_logging(cfg, app="convert")``.
    """
    cfg = config if config is not None else default_config()
    return setup_logging(**cfg.logging.as_setup_kwargs(), context=context or None)
