"""Codec configuration loading and validation."""

from slice_exchange.configs.loader import (
    CodecConfigV1,
    ConfigError,
    DecoderConfig,
    EncoderConfig,
    GeometryConfig,
    LoggingConfig,
    configure_logging,
    default_config,
    load_config,
)

__all__ = [
    "CodecConfigV1",
    "ConfigError",
    "DecoderConfig",
    "EncoderConfig",
    "GeometryConfig",
    "LoggingConfig",
    "configure_logging",
    "default_config",
    "load_config",
]
