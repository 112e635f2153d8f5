"""
Deposit, tax and balance checks.

Amounts are handled in wei as integers. Conversion to UND is only done
for display, with Decimal so that 1 wei is never rounded away.
"""

from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from .errors import InsufficientFunds

if TYPE_CHECKING:
    from .ledger import LedgerClient

logger = structlog.get_logger()

WEI_PER_UND = Decimal(10) ** 18

# Per-record tax charged by WRKChain Root, in UND
WRKCHAIN_ROOT_TAX = 1

WRKCHAIN_ROOT_CONTRACT_ADDRESS = "0x0000000000000000000000000000000000000087"

# Storage slot in WRKChain Root holding the registration deposit, in wei
DEPOSIT_STORAGE_SLOT = 0


def wei_to_und(amount: int) -> Decimal:
    """
    Convert wei to UND without losing precision.

    Examples:
        >>> wei_to_und(10**18)
        Decimal('1')
        >>> wei_to_und(1)
        Decimal('1E-18')
    """
    return Decimal(amount) / WEI_PER_UND


def format_und(amount: int) -> str:
    """Plain decimal UND string, e.g. "1.5"."""
    return f"{wei_to_und(amount):f}"


def calc_tax() -> int:
    """Per-record tax in wei."""
    return WRKCHAIN_ROOT_TAX * 10**18


def required_for_register(deposit: int, reserve: int = 0) -> int:
    return deposit + calc_tax() + reserve


def required_for_record(reserve: int = 0) -> int:
    return calc_tax() + reserve


def require_funds(account: str, balance: int, required: int, action: str) -> None:
    """
    Raise InsufficientFunds unless balance covers required.

    A balance exactly equal to the required amount passes.
    """
    if balance < required:
        raise InsufficientFunds(account, balance, required, action)

    logger.debug(
        "balance_ok",
        account=account,
        action=action,
        balance_und=format_und(balance),
        required_und=format_und(required),
    )


async def read_deposit(ledger: "LedgerClient") -> int:
    """Registration deposit as currently configured in the contract."""
    word = await ledger.storage_at(WRKCHAIN_ROOT_CONTRACT_ADDRESS, DEPOSIT_STORAGE_SLOT)
    return int.from_bytes(word, "big")
