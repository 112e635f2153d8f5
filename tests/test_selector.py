"""
Tests for header field selection.
"""

import itertools

import pytest

from wrkoracle.models import ZERO32
from wrkoracle.selector import FieldSelection, select_fields

SEALER = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"


@pytest.mark.parametrize(
    "parent,receipt,tx,state", list(itertools.product([False, True], repeat=4))
)
def test_every_flag_combination(make_header, parent, receipt, tx, state):
    raw = make_header(42)
    selection = FieldSelection(
        include_parent=parent,
        include_receipt=receipt,
        include_tx=tx,
        include_state=state,
    )

    record = select_fields(raw, selection, chain_id=99, sealer=SEALER)

    assert record.parent_hash == (raw.parent_hash if parent else ZERO32)
    assert record.receipt_root == (raw.receipt_root if receipt else ZERO32)
    assert record.tx_root == (raw.tx_root if tx else ZERO32)
    assert record.state_root == (raw.state_root if state else ZERO32)

    # always carried
    assert record.block_hash == raw.hash
    assert record.height == 42
    assert record.chain_id == 99
    assert record.sealer == SEALER


def test_default_selection_records_hash_only(make_header):
    record = select_fields(make_header(1), FieldSelection(), chain_id=1, sealer=SEALER)
    assert record.parent_hash == record.receipt_root == record.tx_root == record.state_root == ZERO32


def test_contract_args_order(make_header):
    raw = make_header(5)
    record = select_fields(raw, FieldSelection(include_state=True), chain_id=3, sealer=SEALER)

    assert record.contract_args() == [
        3,
        5,
        raw.hash,
        ZERO32,
        ZERO32,
        ZERO32,
        raw.state_root,
        SEALER,
    ]
