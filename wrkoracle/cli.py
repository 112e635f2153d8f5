"""
CLI for the WRKChain Oracle.
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, NoReturn, Optional

import structlog
import typer
from dotenv import load_dotenv
from eth_account.signers.local import LocalAccount
from pydantic import ValidationError

from . import __version__
from .config import OracleSettings, make_data_dir
from .db import SubmissionJournal
from .dispatcher import TransactionDispatcher
from .errors import ConfigurationError, OracleError
from .genesis import load_genesis
from .keystore import LIGHT_SCRYPT_N, STANDARD_SCRYPT_N, KeyStore, read_secret_file
from .ledger import LedgerClient
from .nonce import NonceSequencer
from .poller import PollLoop
from .registration import Registrar, build_authorised_set
from .session import SigningSession

app = typer.Typer(
    name="wrkoracle",
    help="WRKChain Oracle: register a WRKChain and record its block headers on Mainchain",
    add_completion=False,
)

DATADIR_HELP = "Directory for the keystore and data"


def configure_logging(level: str = "INFO") -> None:
    """Console logging with ISO timestamps, filtered at level."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"unknown log level {level!r}", param_hint="--log-level")

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
    )


def _same_stream() -> bool:
    try:
        return os.path.samestat(
            os.fstat(sys.stdout.fileno()), os.fstat(sys.stderr.fileno())
        )
    except (OSError, ValueError):
        return False


def fatal(message: str) -> NoReturn:
    """
    Print "Fatal: <message>" and exit with status 1.

    The message goes to stderr, and also to stdout when stdout is
    redirected somewhere else.
    """
    line = f"Fatal: {message}"
    typer.echo(line, err=True)
    if not _same_stream():
        typer.echo(line)
    raise typer.Exit(1)


def _run(command: Callable[[], Awaitable[Any]]) -> Any:
    """Run an async command body, turning oracle errors into a fatal exit."""
    try:
        return asyncio.run(command())
    except ValidationError as e:
        fatal(f"invalid configuration: {e}")
    except OracleError as e:
        fatal(str(e))


def _settings(**overrides: Any) -> OracleSettings:
    """Settings from env/.env, with every flag that was given taking precedence."""
    return OracleSettings(**{k: v for k, v in overrides.items() if v is not None})


def _unlock(settings: OracleSettings) -> LocalAccount:
    address = settings.require("account", "Account to unlock required (--account)")
    password = read_secret_file(settings.password_path, "password")
    return KeyStore(settings.keystore_dir).unlock(address, password)


@app.callback()
def cli(
    log_level: str = typer.Option("INFO", "--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)"),
) -> None:
    configure_logging(log_level)


@app.command()
def init(
    password: Optional[Path] = typer.Option(
        None, "--password", help="Full path to the account password file"
    ),
    key: Optional[Path] = typer.Option(
        None, "--key", help="Full path to the private key file"
    ),
    datadir: Optional[Path] = typer.Option(None, "--datadir", help=DATADIR_HELP),
    lightkdf: bool = typer.Option(
        False, "--lightkdf", help="Weaker scrypt parameters; faster, for test setups"
    ),
) -> None:
    """
    Import the oracle's signing key into the keystore.
    """

    async def _init() -> None:
        settings = _settings(
            datadir=datadir,
            password_path=password,
            key_path=key,
            light_kdf=lightkdf or None,
        )
        make_data_dir(settings.datadir)

        secret = read_secret_file(settings.password_path, "password")
        private_key = read_secret_file(settings.key_path, "private key")

        store = KeyStore(
            settings.keystore_dir,
            LIGHT_SCRYPT_N if settings.light_kdf else STANDARD_SCRYPT_N,
        )
        address, created = store.import_key(private_key, secret)

        if created:
            typer.echo(f"Account {address} created. You can now delete {settings.key_path}")
        else:
            typer.echo(f"Account {address} already exists")

    _run(_init)


@app.command()
def register(
    account: Optional[str] = typer.Option(None, "--account", help="Account to unlock, e.g. 0x160B..."),
    password: Optional[Path] = typer.Option(
        None, "--password", help="Full path to the account password file"
    ),
    genesis: Optional[Path] = typer.Option(
        None, "--genesis", help="Full path to the WRKChain's genesis.json"
    ),
    auth: Optional[str] = typer.Option(
        None,
        "--auth",
        help="Comma separated addresses authorised to record headers for the WRKChain",
    ),
    mainchain_rpc: Optional[str] = typer.Option(
        None, "--mainchain-rpc", help="Mainchain JSON RPC endpoint"
    ),
    und_testnet: bool = typer.Option(False, "--und-testnet", help="Use the UND test network"),
    datadir: Optional[Path] = typer.Option(None, "--datadir", help=DATADIR_HELP),
) -> None:
    """
    Register a WRKChain's genesis hash and network id with WRKChain Root.
    """

    async def _register() -> None:
        settings = _settings(
            datadir=datadir,
            account=account,
            password_path=password,
            genesis_path=genesis,
            authorised_accounts=auth,
            mainchain_rpc_url=mainchain_rpc,
            und_testnet=und_testnet or None,
        )
        make_data_dir(settings.datadir)

        identity = load_genesis(settings.genesis_path)
        typer.echo("Registering WRKChain with:")
        typer.echo(f"WRKChain Genesis Hash: {identity.genesis_hash_hex}")
        typer.echo(f"WRKChain Network ID: {identity.network_id}")

        operator = settings.require("account", "Account to unlock required (--account)")
        authorised = build_authorised_set(
            operator,
            settings.require("authorised_accounts", "List of authorised addresses required (--auth)"),
        )
        for address in authorised:
            typer.echo(f"Authorised address: {address}")

        signer = _unlock(settings)

        url = settings.resolved_mainchain_rpc
        typer.echo(f"Connecting to Mainchain JSON RPC on {url}")
        ledger = await LedgerClient.connect(url, settings.request_timeout)
        journal = SubmissionJournal(settings.journal_url)
        try:
            session = await SigningSession.open(signer, ledger)
            dispatcher = TransactionDispatcher(session, journal=journal)
            registrar = Registrar(session, dispatcher, reserve=settings.operational_reserve)
            tx_hash = await registrar.register(identity, authorised)
        finally:
            journal.close()
            await ledger.close()

        typer.echo(f"RegisterWrkChain tx sent: {tx_hash}")

    _run(_register)


@app.command()
def record(
    account: Optional[str] = typer.Option(None, "--account", help="Account to unlock, e.g. 0x160B..."),
    password: Optional[Path] = typer.Option(
        None, "--password", help="Full path to the account password file"
    ),
    wrkchain_rpc: Optional[str] = typer.Option(
        None, "--wrkchain-rpc", help="WRKChain JSON RPC endpoint, e.g. http://localhost:8101"
    ),
    freq: Optional[int] = typer.Option(
        None, "--freq", help="Seconds between header writes [default: 3600]"
    ),
    hash_parent: bool = typer.Option(False, "--hash-parent", help="Also record the parent hash"),
    hash_receipt: bool = typer.Option(False, "--hash-receipt", help="Also record the receipt root"),
    hash_tx: bool = typer.Option(False, "--hash-tx", help="Also record the tx root"),
    hash_state: bool = typer.Option(False, "--hash-state", help="Also record the state root"),
    mainchain_rpc: Optional[str] = typer.Option(
        None, "--mainchain-rpc", help="Mainchain JSON RPC endpoint"
    ),
    und_testnet: bool = typer.Option(False, "--und-testnet", help="Use the UND test network"),
    datadir: Optional[Path] = typer.Option(None, "--datadir", help=DATADIR_HELP),
) -> None:
    """
    Record WRKChain block headers on Mainchain until interrupted.

    The WRKChain must be registered first with the register command.
    """

    async def _record() -> None:
        settings = _settings(
            datadir=datadir,
            account=account,
            password_path=password,
            wrkchain_rpc_url=wrkchain_rpc,
            write_frequency=freq,
            record_parent_hash=hash_parent or None,
            record_receipt_root=hash_receipt or None,
            record_tx_root=hash_tx or None,
            record_state_root=hash_state or None,
            mainchain_rpc_url=mainchain_rpc,
            und_testnet=und_testnet or None,
        )
        make_data_dir(settings.datadir)

        source_url = settings.require("wrkchain_rpc_url", "WRKChain JSON RPC URL required (--wrkchain-rpc)")
        signer = _unlock(settings)

        typer.echo(f"Connecting to Mainchain JSON RPC on {settings.resolved_mainchain_rpc}")
        mainchain = await LedgerClient.connect(
            settings.resolved_mainchain_rpc, settings.request_timeout
        )
        try:
            typer.echo(f"Connecting to WRKChain JSON RPC on {source_url}")
            source = await LedgerClient.connect(source_url, settings.request_timeout)
        except OracleError:
            await mainchain.close()
            raise

        journal = SubmissionJournal(settings.journal_url)
        loop = asyncio.get_running_loop()
        handled = []
        try:
            session = await SigningSession.open(signer, mainchain)
            dispatcher = TransactionDispatcher(session, NonceSequencer(), journal)
            poll = PollLoop(
                dispatcher,
                source,
                settings.field_selection,
                interval=settings.write_frequency,
                reserve=settings.operational_reserve,
                retry_count=settings.retry_count,
                retry_backoff=settings.retry_backoff,
            )

            stop = asyncio.Event()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, stop.set)
                    handled.append(sig)
                except NotImplementedError:
                    # Windows event loops have no signal handlers; Ctrl+C raises instead
                    pass

            typer.echo("Start polling. Press Ctrl+C to stop.")
            await poll.run(stop)
        finally:
            for sig in handled:
                loop.remove_signal_handler(sig)
            journal.close()
            await source.close()
            await mainchain.close()

        typer.echo("Stopped.")

    _run(_record)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries to show"),
    datadir: Optional[Path] = typer.Option(None, "--datadir", help=DATADIR_HELP),
) -> None:
    """
    Show recent register/record submissions from the local journal.
    """

    async def _history() -> None:
        if limit < 1:
            raise ConfigurationError("--limit must be at least 1")

        settings = _settings(datadir=datadir)
        make_data_dir(settings.datadir)

        journal = SubmissionJournal(settings.journal_url)
        try:
            entries = journal.recent(limit)
        finally:
            journal.close()

        if not entries:
            typer.echo("No submissions recorded.")
            return

        for entry in entries:
            height = "-" if entry.block_height is None else entry.block_height
            detail = entry.tx_hash if entry.status == "sent" else f"error: {entry.error}"
            typer.echo(
                f"{entry.submitted_at:%Y-%m-%d %H:%M:%S}  {entry.kind:<8} {entry.status:<6} "
                f"chain={entry.chain_id} height={height} nonce={entry.nonce}  {detail}"
            )

    _run(_history)


@app.command()
def version() -> None:
    """Show the oracle version."""
    typer.echo(f"wrkoracle version {__version__}")


def main() -> None:
    """Entry point."""
    load_dotenv()
    app()


if __name__ == "__main__":
    main()
