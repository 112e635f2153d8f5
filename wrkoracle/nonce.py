"""
Nonce sequencing for overlapping Mainchain submissions.

Record transactions are dispatched without waiting for inclusion, so the
ledger's pending nonce can lag behind what this process has already used.
The sequencer is seeded from the ledger once and then counts locally,
only jumping forward when the ledger reports a higher pending nonce
(e.g. the account was used elsewhere).
"""

from typing import Optional

import structlog

logger = structlog.get_logger()


class NonceSequencer:
    """Hands out strictly increasing nonces for one signing account."""

    def __init__(self, seed: Optional[int] = None):
        self._next: Optional[int] = seed

    @property
    def seeded(self) -> bool:
        return self._next is not None

    def next(self, observed: Optional[int] = None) -> int:
        """
        Return the nonce for the next send.

        Args:
            observed: Pending nonce just read from the ledger, if any.
        """
        if self._next is None:
            if observed is None:
                raise RuntimeError("NonceSequencer used before being seeded")
            self._next = observed
            logger.debug("nonce_seeded", nonce=observed)
        elif observed is not None and observed > self._next:
            logger.info("nonce_resync", local=self._next, ledger=observed)
            self._next = observed

        nonce = self._next
        self._next += 1
        return nonce

    def release(self, nonce: int) -> bool:
        """
        Give back a nonce whose transaction never reached the ledger.

        Only the most recently issued nonce can be returned; anything older
        would reorder sends that are already in flight.
        """
        if self._next is not None and self._next == nonce + 1:
            self._next = nonce
            logger.info("nonce_released", nonce=nonce)
            return True
        return False
