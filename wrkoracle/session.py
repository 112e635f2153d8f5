"""
Signing session: an unlocked Mainchain account bound to a ledger.
"""

from dataclasses import dataclass
from typing import Any, Union

import structlog
from eth_account.signers.local import LocalAccount

from .errors import SubmissionError
from .ledger import LedgerClient, MockLedgerClient
from .models import TxOptions

logger = structlog.get_logger()

# Fixed gas limit for WRKChain Root calls
PSEUDO_GAS_LIMIT = 240000


@dataclass
class SigningSession:
    """
    Owned by one process and never persisted.

    Transactions are built from a TxOptions snapshot so in-flight sends never
    see later changes to the session.
    """

    account: LocalAccount
    chain_id: int
    ledger: Union[LedgerClient, MockLedgerClient]
    gas_limit: int = PSEUDO_GAS_LIMIT

    @property
    def address(self) -> str:
        return self.account.address

    @classmethod
    async def open(
        cls,
        account: LocalAccount,
        ledger: Union[LedgerClient, MockLedgerClient],
        gas_limit: int = PSEUDO_GAS_LIMIT,
    ) -> "SigningSession":
        chain_id = await ledger.chain_id()
        logger.info("signing_session_opened", address=account.address, chain_id=chain_id)
        return cls(account=account, chain_id=chain_id, ledger=ledger, gas_limit=gas_limit)

    def options(self, nonce: int, value: int = 0) -> TxOptions:
        return TxOptions(
            sender=self.address,
            nonce=nonce,
            value=value,
            gas_limit=self.gas_limit,
        )

    async def transact(self, fn_name: str, args: list[Any], options: TxOptions) -> str:
        """Build, sign and send one WRKChain Root call. Returns the tx hash."""
        gas_price = await self.ledger.gas_price()
        tx = await self.ledger.build_contract_tx(
            fn_name,
            args,
            {
                "from": options.sender,
                "nonce": options.nonce,
                "value": options.value,
                "gas": options.gas_limit,
                "gasPrice": gas_price,
                "chainId": self.chain_id,
            },
        )

        signed = self.account.sign_transaction(tx)
        try:
            return await self.ledger.send_raw_transaction(signed.raw_transaction)
        except SubmissionError as e:
            raise SubmissionError(
                fn_name, e.message, nonce=options.nonce, ambiguous=e.ambiguous
            ) from e
