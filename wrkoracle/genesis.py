"""
geth genesis descriptor parsing.

A WRKChain is identified on Mainchain by its network id and the hash of
its genesis block. The hash is recomputed here from the genesis JSON the
same way geth builds block 0: alloc accounts go into a secure state trie,
and the header is RLP encoded and hashed with keccak256.

Only geth-style genesis files are supported.
"""

import json
from pathlib import Path
from typing import Any, Optional

import rlp
import structlog
from trie import HexaryTrie
from web3 import Web3

from .errors import ConfigurationError
from .models import ChainIdentity

logger = structlog.get_logger()

EMPTY_ROOT = bytes.fromhex("56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421")
EMPTY_UNCLE_HASH = bytes.fromhex("1dcc4de8dec75d7aab85b567b6ccd41ad312451b948a7413f0a142fd40d49347")
EMPTY_CODE_HASH = bytes.fromhex("c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470")

# geth params used when the genesis file leaves them out
GENESIS_GAS_LIMIT = 4712388
GENESIS_DIFFICULTY = 131072
INITIAL_BASE_FEE = 1_000_000_000

BLOOM_SIZE = 256


def parse_quantity(value: Any, default: int = 0) -> int:
    """Integer from a JSON number, 0x-hex string or decimal string."""
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid quantity {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                return int(text, 16)
            return int(text, 10)
        except ValueError:
            pass
    raise ConfigurationError(f"invalid quantity {value!r}")


def parse_bytes(value: Optional[str], size: Optional[int] = None) -> bytes:
    """
    Bytes from a hex string. When size is given the result is left-padded
    to exactly size bytes.
    """
    if value is None:
        return b"\x00" * size if size else b""

    text = value[2:] if value[:2].lower() == "0x" else value
    try:
        data = bytes.fromhex(text)
    except ValueError as e:
        raise ConfigurationError(f"invalid hex value {value!r}") from e

    if size is not None:
        if len(data) > size:
            raise ConfigurationError(f"hex value {value!r} longer than {size} bytes")
        data = data.rjust(size, b"\x00")
    return data


def storage_root(storage: dict[str, str]) -> bytes:
    t = HexaryTrie({})
    for key, value in storage.items():
        slot = parse_bytes(key, 32)
        word = parse_bytes(value, 32).lstrip(b"\x00")
        # zero slots are absent from the trie
        if not word:
            continue
        t.set(Web3.keccak(slot), rlp.encode(word))
    return t.root_hash


def state_root(alloc: dict[str, Any]) -> bytes:
    """Root of the secure state trie holding the genesis alloc."""
    t = HexaryTrie({})
    for address, account in alloc.items():
        addr = parse_bytes(address, 20)
        code = parse_bytes(account.get("code"))
        body = [
            parse_quantity(account.get("nonce")),
            parse_quantity(account.get("balance")),
            storage_root(account.get("storage") or {}),
            Web3.keccak(code) if code else EMPTY_CODE_HASH,
        ]
        t.set(Web3.keccak(addr), rlp.encode(body))
    return t.root_hash


def genesis_header(genesis: dict[str, Any]) -> list[Any]:
    """RLP field list for block 0."""
    config = genesis.get("config") or {}
    gas_limit = parse_quantity(genesis.get("gasLimit")) or GENESIS_GAS_LIMIT
    difficulty = genesis.get("difficulty")

    fields = [
        parse_bytes(genesis.get("parentHash"), 32),
        EMPTY_UNCLE_HASH,
        parse_bytes(genesis.get("coinbase"), 20),
        state_root(genesis.get("alloc") or {}),
        EMPTY_ROOT,  # transactions
        EMPTY_ROOT,  # receipts
        b"\x00" * BLOOM_SIZE,
        GENESIS_DIFFICULTY if difficulty is None else parse_quantity(difficulty),
        parse_quantity(genesis.get("number")),
        gas_limit,
        parse_quantity(genesis.get("gasUsed")),
        parse_quantity(genesis.get("timestamp")),
        parse_bytes(genesis.get("extraData")),
        parse_bytes(genesis.get("mixHash"), 32),
        parse_quantity(genesis.get("nonce")).to_bytes(8, "big"),
    ]

    # London active from block 0 adds baseFee to the header
    london = config.get("londonBlock")
    if london is not None and parse_quantity(london) == 0:
        fields.append(parse_quantity(genesis.get("baseFeePerGas"), INITIAL_BASE_FEE))

    return fields


def genesis_block_hash(genesis: dict[str, Any]) -> bytes:
    return Web3.keccak(rlp.encode(genesis_header(genesis)))


def chain_identity(genesis: dict[str, Any]) -> ChainIdentity:
    config = genesis.get("config")
    if not isinstance(config, dict) or config.get("chainId") is None:
        raise ConfigurationError("invalid genesis file: config.chainId missing")

    try:
        return ChainIdentity(
            network_id=parse_quantity(config["chainId"]),
            genesis_hash=bytes(genesis_block_hash(genesis)),
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ConfigurationError(f"invalid genesis file: {e}") from e


def load_genesis(path: Optional[Path]) -> ChainIdentity:
    """Read a geth genesis.json and derive the WRKChain identity."""
    if path is None:
        raise ConfigurationError("Path to genesis JSON file required")

    path = Path(str(path).strip())
    try:
        genesis = json.loads(path.read_text())
    except OSError as e:
        raise ConfigurationError(f"Failed to read genesis file: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid genesis file: {e}") from e

    if not isinstance(genesis, dict):
        raise ConfigurationError("invalid genesis file: expected a JSON object")

    identity = chain_identity(genesis)
    logger.info(
        "genesis_loaded",
        path=str(path),
        network_id=identity.network_id,
        genesis_hash=identity.genesis_hash_hex,
    )
    return identity
