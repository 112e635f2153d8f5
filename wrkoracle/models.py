"""
Data models shared across the oracle.

All records are immutable; a tick builds fresh instances and hands them
to the dispatcher by value.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from web3 import Web3


ZERO32 = b"\x00" * 32


def to_hex(value: bytes) -> str:
    """0x-prefixed hex for logging and storage."""
    return Web3.to_hex(value)


@dataclass(frozen=True)
class ChainIdentity:
    """Network id and genesis hash uniquely identifying a WRKChain."""

    network_id: int
    genesis_hash: bytes  # 32 bytes

    def __post_init__(self) -> None:
        if self.network_id < 0:
            raise ValueError(f"network id must be non-negative, got {self.network_id}")
        if len(self.genesis_hash) != 32:
            raise ValueError(f"genesis hash must be 32 bytes, got {len(self.genesis_hash)}")

    @property
    def genesis_hash_hex(self) -> str:
        return to_hex(self.genesis_hash)


@dataclass(frozen=True)
class RawHeader:
    """Latest WRKChain header fields the oracle cares about."""

    height: int
    hash: bytes
    parent_hash: bytes
    receipt_root: bytes
    tx_root: bytes
    state_root: bytes

    @classmethod
    def from_block(cls, block: Any) -> "RawHeader":
        """Build from a web3 BlockData mapping."""
        return cls(
            height=int(block["number"]),
            hash=bytes(block["hash"]),
            parent_hash=bytes(block["parentHash"]),
            receipt_root=bytes(block["receiptsRoot"]),
            tx_root=bytes(block["transactionsRoot"]),
            state_root=bytes(block["stateRoot"]),
        )


@dataclass(frozen=True)
class HeaderRecord:
    """Per-tick payload for WRKChainRoot.recordHeader."""

    chain_id: int
    height: int
    block_hash: bytes
    parent_hash: bytes
    receipt_root: bytes
    tx_root: bytes
    state_root: bytes
    sealer: str

    def contract_args(self) -> list[Any]:
        return [
            self.chain_id,
            self.height,
            self.block_hash,
            self.parent_hash,
            self.receipt_root,
            self.tx_root,
            self.state_root,
            self.sealer,
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "height": self.height,
            "block_hash": to_hex(self.block_hash),
            "parent_hash": to_hex(self.parent_hash),
            "receipt_root": to_hex(self.receipt_root),
            "tx_root": to_hex(self.tx_root),
            "state_root": to_hex(self.state_root),
            "sealer": self.sealer,
        }


@dataclass(frozen=True)
class RegistrationEvent:
    """RegisterWrkChain event emitted by the WRKChain Root contract."""

    chain_id: int
    genesis_hash: bytes
    tx_hash: str


@dataclass(frozen=True)
class TxOptions:
    """Snapshot of signing parameters for exactly one send."""

    sender: str
    nonce: int
    value: int
    gas_limit: int


@dataclass
class DispatchResult:
    """Outcome of submitting one transaction."""

    kind: str  # "register" or "record"
    success: bool
    nonce: int
    chain_id: int
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    block_height: Optional[int] = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
