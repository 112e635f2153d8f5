"""
Configuration management for the WRKChain Oracle.

Values come from WRKORACLE_* environment variables or a .env file, and are
overridden by CLI flags.
"""

import os
import sys
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .selector import FieldSelection

DEFAULT_MAINCHAIN_TESTNET_RPC = "https://rpc-testnet.unification.io"
DEFAULT_MAINCHAIN_MAINNET_RPC = "https://rpc-testnet.unification.io"

DEFAULT_WRITE_FREQUENCY = 3600


def expand_path(path: str) -> Path:
    """Expand ~ and $VARS, then normalise, e.g. ~/a/../b -> /home/me/b."""
    return Path(os.path.normpath(os.path.expandvars(os.path.expanduser(path))))


def default_data_dir() -> Path:
    """Per-platform data directory under the user's home."""
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "WrkchainOracle"
    if sys.platform.startswith("win"):
        return home / "AppData" / "Roaming" / "WrkchainOracle"
    return home / ".wrkchain_oracle"


def make_data_dir(path: Path) -> Path:
    try:
        path.mkdir(parents=True, exist_ok=True, mode=0o700)
    except OSError as e:
        raise ConfigurationError(f"Could not create datadir {path}: {e}") from e
    return path


class OracleSettings(BaseSettings):
    """Environment-based settings."""

    model_config = SettingsConfigDict(
        env_prefix="WRKORACLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    datadir: Path = Field(default_factory=default_data_dir)

    # Mainchain
    mainchain_rpc_url: Optional[str] = None
    und_testnet: bool = False

    # WRKChain
    wrkchain_rpc_url: Optional[str] = None

    # Account
    account: Optional[str] = None
    password_path: Optional[Path] = None
    key_path: Optional[Path] = None
    light_kdf: bool = False

    # Registration
    genesis_path: Optional[Path] = None
    authorised_accounts: Optional[str] = None

    # Recording
    write_frequency: int = Field(default=DEFAULT_WRITE_FREQUENCY, ge=1)
    record_parent_hash: bool = False
    record_receipt_root: bool = False
    record_tx_root: bool = False
    record_state_root: bool = False

    # RPC behaviour
    request_timeout: int = Field(default=30, ge=1)
    retry_count: int = Field(default=3, ge=0, le=10)
    retry_backoff: float = Field(default=2.0, ge=0)

    # Extra wei kept on top of deposit/tax before sending
    operational_reserve: int = Field(default=0, ge=0)

    database_url: Optional[str] = None

    @field_validator("datadir", mode="before")
    @classmethod
    def _expand_datadir(cls, value: Any) -> Any:
        if isinstance(value, (str, Path)):
            return expand_path(str(value))
        return value

    @property
    def keystore_dir(self) -> Path:
        return self.datadir / "keys"

    @property
    def journal_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.datadir / 'oracle.db'}"

    @property
    def resolved_mainchain_rpc(self) -> str:
        if self.mainchain_rpc_url:
            return self.mainchain_rpc_url
        if self.und_testnet:
            return DEFAULT_MAINCHAIN_TESTNET_RPC
        return DEFAULT_MAINCHAIN_MAINNET_RPC

    @property
    def field_selection(self) -> FieldSelection:
        return FieldSelection(
            include_parent=self.record_parent_hash,
            include_receipt=self.record_receipt_root,
            include_tx=self.record_tx_root,
            include_state=self.record_state_root,
        )

    def require(self, field: str, message: str) -> Any:
        """Return a setting, raising ConfigurationError if it is unset or blank."""
        value = getattr(self, field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ConfigurationError(message)
        return value
