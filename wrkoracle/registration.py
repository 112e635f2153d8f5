"""
One-shot WRKChain registration.

Mainchain's RegisterWrkChain event log is the only record of whether a
WRKChain is registered; nothing is cached locally.

The guard is advisory. Checking the log and sending the registration are
two separate RPC calls, so two registrars started at the same time can
both pass the check. The WRKChain Root contract has the final say in that
case and the losing transaction reverts.
"""

from typing import Optional, Union

import structlog
from web3 import Web3

from .dispatcher import TransactionDispatcher
from .errors import AlreadyRegistered, ConfigurationError, SubmissionError
from .fees import format_und, read_deposit, require_funds, required_for_register
from .ledger import LedgerClient, MockLedgerClient
from .models import ChainIdentity, to_hex
from .session import SigningSession

logger = structlog.get_logger()


def build_authorised_set(operator: str, raw_csv: Optional[str]) -> tuple[str, ...]:
    """
    Addresses allowed to record headers for the WRKChain.

    The operator always comes first. Other entries keep their first-seen
    order; duplicates (case-insensitive) and blank entries are dropped.

    Examples:
        >>> build_authorised_set(
        ...     "0x160b51e66e51327ac31c643f7675b8a9006aee1e",
        ...     "0x160B51E66E51327AC31C643F7675B8A9006AEE1E,",
        ... )
        ('0x160B51e66e51327ac31C643f7675B8A9006aEE1E',)
    """
    try:
        ordered = [Web3.to_checksum_address(operator)]
    except ValueError as e:
        raise ConfigurationError(f"Invalid operator address {operator!r}") from e

    for entry in (raw_csv or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            address = Web3.to_checksum_address(entry)
        except ValueError as e:
            raise ConfigurationError(f"Invalid authorised address {entry!r}") from e
        if address not in ordered:
            ordered.append(address)

    return tuple(ordered)


class RegistrationGuard:
    """Refuses to register a WRKChain that already has a RegisterWrkChain event."""

    def __init__(self, ledger: Union[LedgerClient, MockLedgerClient]):
        self.ledger = ledger

    async def check(self, identity: ChainIdentity) -> None:
        events = await self.ledger.registration_events(identity.network_id)
        if events:
            first = events[0]
            logger.warning(
                "wrkchain_already_registered",
                chain_id=first.chain_id,
                genesis_hash=to_hex(first.genesis_hash),
                tx_hash=first.tx_hash,
            )
            raise AlreadyRegistered(first.chain_id, to_hex(first.genesis_hash), first.tx_hash)

        logger.debug("wrkchain_not_registered", network_id=identity.network_id)


class Registrar:
    """Runs the register flow: guard, funds check, then one transaction."""

    def __init__(
        self,
        session: SigningSession,
        dispatcher: TransactionDispatcher,
        reserve: int = 0,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.guard = RegistrationGuard(session.ledger)
        self.reserve = reserve

    async def register(self, identity: ChainIdentity, authorised: tuple[str, ...]) -> str:
        """
        Register the WRKChain and return the transaction hash.

        Raises:
            AlreadyRegistered: an event for this network id already exists.
            InsufficientFunds: balance below deposit + tax + reserve.
            SubmissionError: Mainchain did not accept the transaction.
        """
        ledger = self.session.ledger
        address = self.session.address

        await self.guard.check(identity)

        balance = await ledger.balance_at(address)
        logger.info("account_balance", account=address, balance_und=format_und(balance))

        deposit = await read_deposit(ledger)
        logger.info("registration_deposit", deposit_und=format_und(deposit))

        require_funds(
            address,
            balance,
            required_for_register(deposit, self.reserve),
            "register WRKChain",
        )

        nonce = await ledger.pending_nonce_at(address)
        options = self.session.options(nonce, value=deposit)

        result = await self.dispatcher.submit_registration(options, identity, authorised)
        if not result.success:
            raise SubmissionError("register", result.error or "unknown error", nonce=nonce)
        return result.tx_hash
