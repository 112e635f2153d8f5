"""
Transaction dispatch to the WRKChain Root contract.

Each submission is signed with a frozen TxOptions snapshot and sent without
waiting for a receipt. Outcomes are reported as DispatchResult to the
journal and to registered callbacks.

Known gap: receipts are never awaited, so a transaction that is accepted
by the node but later dropped or reverted is still reported as sent.
"""

import asyncio
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from .db import SubmissionJournal
from .errors import OracleError, SubmissionError
from .models import ChainIdentity, DispatchResult, HeaderRecord, TxOptions
from .nonce import NonceSequencer
from .session import PSEUDO_GAS_LIMIT, SigningSession

logger = structlog.get_logger()

__all__ = ["PSEUDO_GAS_LIMIT", "TransactionDispatcher"]

ResultCallback = Callable[[DispatchResult], None]


class TransactionDispatcher:
    """Submits register and record transactions through a signing session."""

    def __init__(
        self,
        session: SigningSession,
        sequencer: Optional[NonceSequencer] = None,
        journal: Optional[SubmissionJournal] = None,
    ):
        self.session = session
        self.sequencer = sequencer
        self.journal = journal
        self._callbacks: list[ResultCallback] = []
        self._tasks: set[asyncio.Task[DispatchResult]] = set()

    def on_result(self, callback: ResultCallback) -> None:
        self._callbacks.append(callback)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def _submit(
        self,
        kind: str,
        fn_name: str,
        args: list,
        options: TxOptions,
        chain_id: int,
        block_height: Optional[int] = None,
    ) -> DispatchResult:
        result = DispatchResult(
            kind=kind,
            success=False,
            nonce=options.nonce,
            chain_id=chain_id,
            block_height=block_height,
        )
        try:
            result.tx_hash = await self.session.transact(fn_name, args, options)
            result.success = True
        except SubmissionError as e:
            result.error = e.message
            if e.ambiguous:
                # the node may hold this tx already
                logger.warning("nonce_kept_after_ambiguous_send", nonce=options.nonce, kind=kind)
            else:
                self._release(options.nonce)
        except OracleError as e:
            result.error = str(e)
            self._release(options.nonce)
        except Exception as e:
            logger.exception("dispatch_crashed", kind=kind, nonce=options.nonce)
            result.error = f"{type(e).__name__}: {e}"
            self._release(options.nonce)

        self._report(result)
        return result

    def _release(self, nonce: int) -> None:
        # never reached the ledger, so the nonce can be reused
        if self.sequencer is not None:
            self.sequencer.release(nonce)

    def _report(self, result: DispatchResult) -> None:
        if self.journal is not None:
            try:
                self.journal.record(result)
            except SQLAlchemyError as e:
                logger.error("journal_write_failed", kind=result.kind, error=str(e))

        for callback in self._callbacks:
            try:
                callback(result)
            except Exception as e:
                logger.error("result_callback_failed", kind=result.kind, error=str(e))

    async def submit_registration(
        self,
        options: TxOptions,
        identity: ChainIdentity,
        authorised: tuple[str, ...],
    ) -> DispatchResult:
        """Send registerWrkChain, with the deposit as tx value."""
        logger.info(
            "register_tx_sending",
            network_id=identity.network_id,
            genesis_hash=identity.genesis_hash_hex,
            authorised=list(authorised),
            nonce=options.nonce,
            value=options.value,
        )
        result = await self._submit(
            "register",
            "registerWrkChain",
            [identity.network_id, list(authorised), identity.genesis_hash],
            options,
            chain_id=identity.network_id,
        )
        if result.success:
            logger.info("register_tx_sent", tx_hash=result.tx_hash, nonce=options.nonce)
        else:
            logger.error("register_tx_failed", error=result.error, nonce=options.nonce)
        return result

    async def submit_record(
        self,
        options: TxOptions,
        record: HeaderRecord,
        interval: Optional[int] = None,
    ) -> DispatchResult:
        """Send recordHeader. Failures are logged and returned, never raised."""
        result = await self._submit(
            "record",
            "recordHeader",
            record.contract_args(),
            options,
            chain_id=record.chain_id,
            block_height=record.height,
        )
        if result.success:
            logger.info(
                "record_tx_sent",
                tx_hash=result.tx_hash,
                nonce=options.nonce,
                height=record.height,
                next_attempt_in=interval,
            )
        else:
            logger.warning(
                "record_tx_failed",
                error=result.error,
                nonce=options.nonce,
                height=record.height,
                next_attempt_in=interval,
            )
        return result

    def spawn_record(
        self,
        options: TxOptions,
        record: HeaderRecord,
        interval: Optional[int] = None,
    ) -> "asyncio.Task[DispatchResult]":
        """Start submit_record in the background and track the task."""
        task = asyncio.create_task(
            self.submit_record(options, record, interval),
            name=f"record-{record.height}-{options.nonce}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> list[DispatchResult]:
        """Wait for every in-flight submission to finish."""
        if not self._tasks:
            return []

        pending = list(self._tasks)
        logger.info("dispatcher_draining", in_flight=len(pending))
        results = await asyncio.gather(*pending, return_exceptions=True)
        return [r for r in results if isinstance(r, DispatchResult)]
