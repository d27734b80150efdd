"""
Aggregator TOML Configuration Loader

Loads config.toml at startup with environment variable overrides.

Environment variable mapping:
    [protocol] admin              → XLIQ_ADMIN
    [protocol] fee_recipient      → XLIQ_FEE_RECIPIENT
    [protocol] protocol_fee_bps   → XLIQ_PROTOCOL_FEE_BPS
    [protocol] paused             → XLIQ_PAUSED
    [protocol] custody_account    → XLIQ_CUSTODY_ACCOUNT
    [bridge]   refund_on_cancel   → XLIQ_REFUND_ON_CANCEL
    [bridge]   max_expiry_blocks  → XLIQ_MAX_EXPIRY_BLOCKS
    [bridge]   relayers           → XLIQ_RELAYERS (comma separated)
    [logging]  log_level          → XLIQ_LOG_LEVEL
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    DEFAULT_ADMIN,
    DEFAULT_CUSTODY_ACCOUNT,
    DEFAULT_PROTOCOL_FEE_BPS,
    MAX_FEE_BPS,
    MAX_SWAP_EXPIRY_BLOCKS,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Section dataclasses — mirror every [section] of config.example.toml
# ---------------------------------------------------------------------------


@dataclass
class ProtocolSection:
    """[protocol] section."""
    admin: str = DEFAULT_ADMIN
    fee_recipient: str = ""
    protocol_fee_bps: int = DEFAULT_PROTOCOL_FEE_BPS
    paused: bool = False
    custody_account: str = DEFAULT_CUSTODY_ACCOUNT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolSection":
        return cls(
            admin=data.get("admin", DEFAULT_ADMIN),
            fee_recipient=data.get("fee_recipient", ""),
            protocol_fee_bps=data.get("protocol_fee_bps", DEFAULT_PROTOCOL_FEE_BPS),
            paused=data.get("paused", False),
            custody_account=data.get("custody_account", DEFAULT_CUSTODY_ACCOUNT),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("XLIQ_ADMIN"):
            self.admin = v
        if v := os.environ.get("XLIQ_FEE_RECIPIENT"):
            self.fee_recipient = v
        if v := os.environ.get("XLIQ_PROTOCOL_FEE_BPS"):
            self.protocol_fee_bps = int(v)
        if v := os.environ.get("XLIQ_PAUSED"):
            self.paused = _env_bool(v)
        if v := os.environ.get("XLIQ_CUSTODY_ACCOUNT"):
            self.custody_account = v

    @property
    def effective_fee_recipient(self) -> str:
        """Fee recipient, defaulting to the admin."""
        return self.fee_recipient or self.admin

    def validate(self) -> None:
        if not self.admin:
            raise ConfigurationError("protocol.admin must be set")
        if not 0 <= self.protocol_fee_bps <= MAX_FEE_BPS:
            raise ConfigurationError(
                f"protocol.protocol_fee_bps must be 0..{MAX_FEE_BPS}, got {self.protocol_fee_bps}"
            )
        if not self.custody_account:
            raise ConfigurationError("protocol.custody_account must be set")
        if self.custody_account in (self.admin, self.effective_fee_recipient):
            raise ConfigurationError("custody_account must differ from admin and fee_recipient")


@dataclass
class BridgeSection:
    """[bridge] section."""
    refund_on_cancel: bool = False
    max_expiry_blocks: int = MAX_SWAP_EXPIRY_BLOCKS
    # Empty: the protocol admin is the only relayer.
    relayers: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeSection":
        return cls(
            refund_on_cancel=data.get("refund_on_cancel", False),
            max_expiry_blocks=data.get("max_expiry_blocks", MAX_SWAP_EXPIRY_BLOCKS),
            relayers=list(data.get("relayers", [])),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("XLIQ_REFUND_ON_CANCEL"):
            self.refund_on_cancel = _env_bool(v)
        if v := os.environ.get("XLIQ_MAX_EXPIRY_BLOCKS"):
            self.max_expiry_blocks = int(v)
        if v := os.environ.get("XLIQ_RELAYERS"):
            self.relayers = [r.strip() for r in v.split(",") if r.strip()]

    def validate(self) -> None:
        if self.max_expiry_blocks < 1:
            raise ConfigurationError("bridge.max_expiry_blocks must be >= 1")


@dataclass
class LoggingSection:
    """[logging] section."""
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingSection":
        return cls(log_level=str(data.get("log_level", "INFO")).upper())

    def apply_env(self) -> None:
        if v := os.environ.get("XLIQ_LOG_LEVEL"):
            self.log_level = v.upper()

    def validate(self) -> None:
        if self.log_level not in _LOG_LEVELS:
            raise ConfigurationError(f"Invalid log_level: {self.log_level}")


# -----------------------------------------------------------------------
# Top-level config
# -----------------------------------------------------------------------

@dataclass
class AggregatorConfig:
    """
    Aggregator configuration.

    Loads every section of config.toml and applies environment variable
    overrides.
    """
    protocol: ProtocolSection = field(default_factory=ProtocolSection)
    bridge: BridgeSection = field(default_factory=BridgeSection)
    logging: LoggingSection = field(default_factory=LoggingSection)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregatorConfig":
        """Create AggregatorConfig from a parsed TOML dict."""
        return cls(
            protocol=ProtocolSection.from_dict(data.get("protocol", {})),
            bridge=BridgeSection.from_dict(data.get("bridge", {})),
            logging=LoggingSection.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "AggregatorConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults with env overrides applied.
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Malformed config file {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.protocol.apply_env()
        self.bridge.apply_env()
        self.logging.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        self.protocol.validate()
        self.bridge.validate()
        self.logging.validate()
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "protocol": {
                "admin": self.protocol.admin,
                "fee_recipient": self.protocol.effective_fee_recipient,
                "protocol_fee_bps": self.protocol.protocol_fee_bps,
                "paused": self.protocol.paused,
                "custody_account": self.protocol.custody_account,
            },
            "bridge": {
                "refund_on_cancel": self.bridge.refund_on_cancel,
                "max_expiry_blocks": self.bridge.max_expiry_blocks,
                "relayers": list(self.bridge.relayers),
            },
            "logging": {
                "log_level": self.logging.log_level,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> AggregatorConfig:
    """
    Load aggregator configuration.

    Resolution order:
        1. Explicit *path* argument
        2. XLIQ_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("XLIQ_CONFIG", "config.toml")

    cfg = AggregatorConfig.from_file(path)
    cfg.validate()
    return cfg
