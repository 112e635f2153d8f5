"""
Tests for genesis parsing and genesis hash computation.
"""

import json

import pytest
import rlp
from web3 import Web3

from wrkoracle.errors import ConfigurationError
from wrkoracle.genesis import (
    EMPTY_CODE_HASH,
    EMPTY_ROOT,
    EMPTY_UNCLE_HASH,
    GENESIS_DIFFICULTY,
    GENESIS_GAS_LIMIT,
    INITIAL_BASE_FEE,
    genesis_block_hash,
    genesis_header,
    load_genesis,
    parse_bytes,
    parse_quantity,
    state_root,
    storage_root,
)

FUNDED = "0x160b51e66e51327ac31c643f7675b8a9006aee1e"

# Ethereum mainnet block 0
MAINNET_GENESIS = {
    "config": {"chainId": 1},
    "nonce": "0x0000000000000042",
    "timestamp": "0x0",
    "extraData": "0x11bbe8db4e347b4e8c937c1c8370e4b5ed33adb3db69cbdb7a38e1e50b1b82fa",
    "gasLimit": "0x1388",
    "difficulty": "0x400000000",
    "mixHash": "0x" + "00" * 32,
    "coinbase": "0x" + "00" * 20,
    "alloc": {},
}
MAINNET_STATE_ROOT = bytes.fromhex("d7f8974fb5ac78d9ac099b9ad5018bedc2ce0a72dad1827a1709da30580f0544")
MAINNET_GENESIS_HASH = bytes.fromhex("d4e56740f876aef8c010b86a40d5f56745a118d0906a34e69aec8c0db1cb8fa3")


def single_leaf_root(key: bytes, value: bytes) -> bytes:
    """Root of a secure trie holding one entry: a lone leaf with an even-length path."""
    return Web3.keccak(rlp.encode([b"\x20" + Web3.keccak(key), value]))


def make_genesis(**overrides) -> dict:
    genesis = {
        "config": {"chainId": 2339117895, "homesteadBlock": 0, "eip155Block": 0},
        "nonce": "0x0",
        "timestamp": "0x5cdec502",
        "extraData": "0x" + "00" * 32,
        "gasLimit": "0x989680",
        "difficulty": "0x1",
        "mixHash": "0x" + "00" * 32,
        "coinbase": "0x" + "00" * 20,
        "alloc": {FUNDED[2:]: {"balance": "0x200000000000000000000000000000000000000000000000000000000000000"}},
        "number": "0x0",
        "gasUsed": "0x0",
        "parentHash": "0x" + "00" * 32,
    }
    genesis.update(overrides)
    return genesis


@pytest.fixture
def genesis_file(tmp_path):
    def _write(genesis: dict):
        path = tmp_path / "genesis.json"
        path.write_text(json.dumps(genesis))
        return path

    return _write


class TestParsing:
    def test_quantities(self):
        assert parse_quantity("0x10") == 16
        assert parse_quantity("16") == 16
        assert parse_quantity(16) == 16
        assert parse_quantity(None, default=7) == 7

    def test_bad_quantity(self):
        with pytest.raises(ConfigurationError):
            parse_quantity("0xZZ")
        with pytest.raises(ConfigurationError):
            parse_quantity(True)

    def test_bytes_padding(self):
        assert parse_bytes("0x01", 32) == b"\x00" * 31 + b"\x01"
        assert parse_bytes(None, 20) == b"\x00" * 20
        assert parse_bytes("abcd") == b"\xab\xcd"

    def test_bytes_too_long(self):
        with pytest.raises(ConfigurationError):
            parse_bytes("0x" + "11" * 21, 20)


class TestStateRoot:
    def test_empty_alloc_is_empty_root(self):
        assert state_root({}) == EMPTY_ROOT

    def test_zero_storage_slots_are_skipped(self):
        assert storage_root({"0x01": "0x00"}) == EMPTY_ROOT
        assert storage_root({"0x01": "0x01"}) != EMPTY_ROOT

    def test_prefixed_and_bare_addresses_agree(self):
        bare = state_root({FUNDED[2:]: {"balance": "1"}})
        prefixed = state_root({FUNDED: {"balance": "0x1"}})
        assert bare == prefixed != EMPTY_ROOT

    def test_empty_constants(self):
        assert EMPTY_ROOT == Web3.keccak(rlp.encode(b""))
        assert EMPTY_UNCLE_HASH == Web3.keccak(rlp.encode([]))
        assert EMPTY_CODE_HASH == Web3.keccak(b"")

    def test_single_storage_slot_root(self):
        slot = b"\x00" * 31 + b"\x01"
        assert storage_root({"0x01": "0x2a"}) == single_leaf_root(slot, rlp.encode(b"\x2a"))

    def test_single_account_root(self):
        address = bytes.fromhex(FUNDED[2:])
        code = bytes.fromhex("6000")
        body = [
            1,
            10,
            single_leaf_root(b"\x00" * 31 + b"\x01", rlp.encode(b"\x2a")),
            Web3.keccak(code),
        ]
        alloc = {
            FUNDED: {
                "nonce": "0x1",
                "balance": "10",
                "code": "0x6000",
                "storage": {"0x01": "0x2a", "0x02": "0x00"},
            }
        }
        assert state_root(alloc) == single_leaf_root(address, rlp.encode(body))


class TestGenesisHash:
    def test_header_defaults(self):
        fields = genesis_header({"config": {"chainId": 1}})
        assert len(fields) == 15
        assert fields[3] == EMPTY_ROOT
        assert fields[7] == GENESIS_DIFFICULTY
        assert fields[9] == GENESIS_GAS_LIMIT
        assert fields[14] == b"\x00" * 8

    def test_london_from_genesis_adds_base_fee(self):
        fields = genesis_header({"config": {"chainId": 1, "londonBlock": 0}})
        assert len(fields) == 16
        assert fields[15] == INITIAL_BASE_FEE

        fields = genesis_header({"config": {"chainId": 1, "londonBlock": 0}, "baseFeePerGas": "0x7"})
        assert fields[15] == 7

    def test_mainnet_genesis_hash(self, monkeypatch):
        # published mainnet state root; the alloc itself is not inlined
        monkeypatch.setattr("wrkoracle.genesis.state_root", lambda alloc: MAINNET_STATE_ROOT)
        assert genesis_block_hash(MAINNET_GENESIS) == MAINNET_GENESIS_HASH

    def test_header_fields_feed_the_hash(self, monkeypatch):
        monkeypatch.setattr("wrkoracle.genesis.state_root", lambda alloc: MAINNET_STATE_ROOT)
        assert genesis_block_hash({**MAINNET_GENESIS, "nonce": "0x43"}) != MAINNET_GENESIS_HASH
        assert genesis_block_hash({**MAINNET_GENESIS, "gasLimit": "0x1389"}) != MAINNET_GENESIS_HASH

    def test_hex_and_decimal_agree(self):
        assert genesis_block_hash(make_genesis(gasLimit="0x989680")) == genesis_block_hash(
            make_genesis(gasLimit="10000000")
        )

    def test_extra_data_changes_hash(self):
        assert genesis_block_hash(make_genesis()) != genesis_block_hash(
            make_genesis(extraData="0x" + "00" * 31 + "01")
        )


class TestLoadGenesis:
    def test_identity(self, genesis_file):
        identity = load_genesis(genesis_file(make_genesis()))
        assert identity.network_id == 2339117895
        assert len(identity.genesis_hash) == 32
        assert identity.genesis_hash == genesis_block_hash(make_genesis())

    def test_deterministic(self, genesis_file):
        path = genesis_file(make_genesis())
        assert load_genesis(path) == load_genesis(path)

    def test_missing_chain_id(self, genesis_file):
        with pytest.raises(ConfigurationError, match="chainId"):
            load_genesis(genesis_file(make_genesis(config={"homesteadBlock": 0})))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "genesis.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="invalid genesis file"):
            load_genesis(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Failed to read genesis file"):
            load_genesis(tmp_path / "nope.json")

    def test_no_path(self):
        with pytest.raises(ConfigurationError, match="genesis JSON file required"):
            load_genesis(None)
