"""Shared fixtures: an operator account and in-memory ledgers."""

from typing import Callable

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from wrkoracle.fees import WRKCHAIN_ROOT_CONTRACT_ADDRESS
from wrkoracle.ledger import MockLedgerClient
from wrkoracle.models import RawHeader
from wrkoracle.session import SigningSession

OPERATOR_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

MAINCHAIN_ID = 50005
WRKCHAIN_ID = 2339117895

UND = 10**18


def create_raw_header(height: int) -> RawHeader:
    """Header whose fields are distinct, recognisable byte patterns."""
    return RawHeader(
        height=height,
        hash=bytes([0xAA]) * 31 + bytes([height % 256]),
        parent_hash=bytes([0xBB]) * 32,
        receipt_root=bytes([0xCC]) * 32,
        tx_root=bytes([0xDD]) * 32,
        state_root=bytes([0xEE]) * 32,
    )


@pytest.fixture
def operator() -> LocalAccount:
    return Account.from_key(OPERATOR_KEY)


@pytest.fixture
def mainchain(operator: LocalAccount) -> MockLedgerClient:
    """Mainchain with a funded operator and a 1000 UND registration deposit."""
    ledger = MockLedgerClient(network=MAINCHAIN_ID, chain=MAINCHAIN_ID)
    ledger.balances[operator.address] = 2000 * UND
    ledger.storage[(Web3.to_checksum_address(WRKCHAIN_ROOT_CONTRACT_ADDRESS), 0)] = (
        (1000 * UND).to_bytes(32, "big")
    )
    return ledger


@pytest.fixture
def wrkchain() -> MockLedgerClient:
    ledger = MockLedgerClient(network=WRKCHAIN_ID, chain=WRKCHAIN_ID)
    ledger.add_header(create_raw_header(100))
    return ledger


@pytest.fixture
def session(operator: LocalAccount, mainchain: MockLedgerClient) -> SigningSession:
    return SigningSession(account=operator, chain_id=MAINCHAIN_ID, ledger=mainchain)


@pytest.fixture
def make_header() -> Callable[[int], RawHeader]:
    return create_raw_header
