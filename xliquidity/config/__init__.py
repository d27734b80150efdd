"""
Aggregator Configuration

Loads config.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    AggregatorConfig,
    BridgeSection,
    LoggingSection,
    ProtocolSection,
    load_config,
)

__all__ = [
    "AggregatorConfig",
    "ProtocolSection",
    "BridgeSection",
    "LoggingSection",
    "load_config",
]
