"""
Choose which WRKChain header roots are disclosed on Mainchain.

WRKChain Root expects a fixed-shape record, so roots the operator does not
want to publish are sent as 32 zero bytes rather than omitted.
"""

from dataclasses import dataclass

from .models import ZERO32, HeaderRecord, RawHeader


@dataclass(frozen=True)
class FieldSelection:
    """Which optional header roots to record. Fixed for the life of a process."""

    include_parent: bool = False
    include_receipt: bool = False
    include_tx: bool = False
    include_state: bool = False


def select_fields(
    raw: RawHeader,
    selection: FieldSelection,
    chain_id: int,
    sealer: str,
) -> HeaderRecord:
    """Build the record for one header. Pure; never fails."""
    return HeaderRecord(
        chain_id=chain_id,
        height=raw.height,
        block_hash=raw.hash,
        parent_hash=raw.parent_hash if selection.include_parent else ZERO32,
        receipt_root=raw.receipt_root if selection.include_receipt else ZERO32,
        tx_root=raw.tx_root if selection.include_tx else ZERO32,
        state_root=raw.state_root if selection.include_state else ZERO32,
        sealer=sealer,
    )
