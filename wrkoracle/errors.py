"""
Error types raised by the oracle.

Guards raise these instead of exiting; the CLI runner decides whether a
given error ends the process.
"""

from typing import Optional


class OracleError(Exception):
    """Base class for all oracle errors."""


class ConfigurationError(OracleError):
    """A required flag, file or keystore entry is missing or invalid."""


class AlreadyRegistered(OracleError):
    """The WRKChain already has a RegisterWrkChain event on Mainchain."""

    def __init__(self, chain_id: int, genesis_hash: str, tx_hash: str):
        self.chain_id = chain_id
        self.genesis_hash = genesis_hash
        self.tx_hash = tx_hash
        super().__init__(
            f"WRKChain {chain_id} already registered in Tx {tx_hash} "
            f"(genesis hash {genesis_hash})"
        )


class InsufficientFunds(OracleError):
    """Account balance does not cover the amount required for an action."""

    def __init__(self, account: str, balance: int, required: int, action: str):
        from .fees import format_und

        self.account = account
        self.balance = balance
        self.required = required
        self.action = action
        super().__init__(
            f"Not enough UND to {action}: account {account} has "
            f"{format_und(balance)} UND, needs {format_und(required)} UND "
            f"(short by {format_und(self.shortfall)} UND)"
        )

    @property
    def shortfall(self) -> int:
        return self.required - self.balance


class RPCError(OracleError):
    """A ledger query failed."""

    def __init__(self, operation: str, message: str, transient: bool = False):
        self.operation = operation
        self.message = message
        self.transient = transient
        kind = "transient" if transient else "permanent"
        super().__init__(f"{operation} failed ({kind}): {message}")


class SubmissionError(OracleError):
    """
    Mainchain rejected a transaction, or it could not be relayed.

    ambiguous is set when the send failed in transit (timeout, dropped
    connection): the node may still have accepted the transaction, so its
    nonce must be treated as used.
    """

    def __init__(
        self,
        kind: str,
        message: str,
        nonce: Optional[int] = None,
        ambiguous: bool = False,
    ):
        self.kind = kind
        self.message = message
        self.nonce = nonce
        self.ambiguous = ambiguous
        super().__init__(f"Could not send {kind} tx (nonce {nonce}): {message}")
