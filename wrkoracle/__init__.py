"""
WRKChain Oracle

Registers a WRKChain's genesis with the WRKChain Root contract on UND
Mainchain, then periodically records the WRKChain's latest block header
there.

Usage:
    # Import the signing key
    wrkoracle init --password /path/to/.password --key /path/to/.private_key

    # Register the WRKChain once
    wrkoracle register --account 0x... --password /path/to/.password \
        --genesis /path/to/genesis.json --auth 0x...,0x...

    # Record headers every hour
    wrkoracle record --account 0x... --password /path/to/.password \
        --wrkchain-rpc http://localhost:8101 --hash-parent
"""

__version__ = "0.3.2-alpha"

from .config import OracleSettings
from .db import SubmissionJournal
from .dispatcher import TransactionDispatcher
from .errors import (
    AlreadyRegistered,
    ConfigurationError,
    InsufficientFunds,
    OracleError,
    RPCError,
    SubmissionError,
)
from .genesis import load_genesis
from .keystore import KeyStore
from .ledger import LedgerClient, MockLedgerClient
from .models import ChainIdentity, DispatchResult, HeaderRecord, RawHeader
from .nonce import NonceSequencer
from .poller import PollLoop
from .registration import Registrar, RegistrationGuard, build_authorised_set
from .selector import FieldSelection, select_fields
from .session import SigningSession

__all__ = [
    "__version__",
    "OracleSettings",
    "SubmissionJournal",
    "TransactionDispatcher",
    "AlreadyRegistered",
    "ConfigurationError",
    "InsufficientFunds",
    "OracleError",
    "RPCError",
    "SubmissionError",
    "load_genesis",
    "KeyStore",
    "LedgerClient",
    "MockLedgerClient",
    "ChainIdentity",
    "DispatchResult",
    "HeaderRecord",
    "RawHeader",
    "NonceSequencer",
    "PollLoop",
    "Registrar",
    "RegistrationGuard",
    "build_authorised_set",
    "FieldSelection",
    "select_fields",
    "SigningSession",
]
