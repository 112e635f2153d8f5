"""
Header poll loop for the record command.

Every interval the loop checks the operator's balance, reads the latest
WRKChain header and the Mainchain pending nonce, then hands a HeaderRecord
to the dispatcher without waiting for it to be sent.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar, Union

import structlog

from .config import DEFAULT_WRITE_FREQUENCY
from .dispatcher import TransactionDispatcher
from .errors import RPCError
from .fees import format_und, require_funds, required_for_record
from .ledger import LedgerClient, MockLedgerClient
from .models import DispatchResult
from .nonce import NonceSequencer
from .selector import FieldSelection, select_fields

logger = structlog.get_logger()

T = TypeVar("T")

Ledger = Union[LedgerClient, MockLedgerClient]


class PollLoop:
    """
    Tick phases: checking_balance -> fetching -> selecting -> dispatching
    -> sleeping, starting from idle.

    InsufficientFunds and RPC errors that outlast the retries are raised
    out of run(). In-flight dispatches are drained before run() returns.
    """

    def __init__(
        self,
        dispatcher: TransactionDispatcher,
        source: Ledger,
        selection: FieldSelection,
        interval: int = DEFAULT_WRITE_FREQUENCY,
        reserve: int = 0,
        retry_count: int = 3,
        retry_backoff: float = 2.0,
    ):
        self.dispatcher = dispatcher
        self.session = dispatcher.session
        self.mainchain = dispatcher.session.ledger
        self.source = source
        self.selection = selection
        self.interval = interval
        self.reserve = reserve
        self.retry_count = retry_count
        self.retry_backoff = retry_backoff

        if dispatcher.sequencer is None:
            dispatcher.sequencer = NonceSequencer()
        self.sequencer = dispatcher.sequencer

        self.chain_id: Optional[int] = None
        self.phase = "idle"
        self.ticks = 0

    def _enter(self, phase: str) -> None:
        self.phase = phase
        logger.debug("tick_phase", phase=phase, tick=self.ticks)

    async def _retry(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run call, retrying transient RPC errors with exponential backoff."""
        attempt = 0
        while True:
            try:
                return await call()
            except RPCError as e:
                if not e.transient or attempt >= self.retry_count:
                    raise
                attempt += 1
                delay = self.retry_backoff * 2 ** (attempt - 1)
                logger.warning(
                    "rpc_retry",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=self.retry_count,
                    delay=delay,
                    error=e.message,
                )
                await asyncio.sleep(delay)

    async def _resolve_chain_id(self) -> int:
        if self.chain_id is None:
            self.chain_id = await self._retry("wrkchain network id", self.source.network_id)
            logger.info("wrkchain_network_id", network_id=self.chain_id)
        return self.chain_id

    async def tick(self) -> "asyncio.Task[DispatchResult]":
        """Run one poll cycle and return the spawned dispatch task."""
        chain_id = await self._resolve_chain_id()
        address = self.session.address

        self._enter("checking_balance")
        balance = await self._retry(
            "mainchain balance", lambda: self.mainchain.balance_at(address)
        )
        logger.info("account_balance", account=address, balance_und=format_und(balance))
        require_funds(address, balance, required_for_record(self.reserve), "record header")

        self._enter("fetching")
        header = await self._retry("wrkchain header", lambda: self.source.header_by_number(None))
        pending = await self._retry(
            "mainchain pending nonce", lambda: self.mainchain.pending_nonce_at(address)
        )
        nonce = self.sequencer.next(pending)

        self._enter("selecting")
        record = select_fields(header, self.selection, chain_id, sealer=address)

        self._enter("dispatching")
        logger.info(
            "record_dispatching",
            pending_nonce=pending,
            nonce=nonce,
            **record.to_dict(),
        )
        return self.dispatcher.spawn_record(self.session.options(nonce), record, self.interval)

    async def run(self, stop: asyncio.Event) -> None:
        """Tick until stop is set. Wakes from the sleep as soon as it is."""
        logger.info("poll_loop_starting", interval=self.interval, sealer=self.session.address)
        try:
            while not stop.is_set():
                self.ticks += 1
                await self.tick()

                self._enter("sleeping")
                logger.info("waiting", seconds=self.interval)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._enter("idle")
            await self.dispatcher.drain()
            logger.info("poll_loop_stopped", ticks=self.ticks)
