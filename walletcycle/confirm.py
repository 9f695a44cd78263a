"""Receipt polling with bounded retry rounds."""

import asyncio
import logging
from typing import Any, Dict

from walletcycle.errors import ConfirmationTimeout, TransactionReverted

log = logging.getLogger("walletcycle.confirm")


class ConfirmationWaiter:
    """Polls for a transaction receipt until success, revert or timeout.

    One round is up to ``max_poll_attempts`` receipt reads spaced by
    ``poll_interval`` seconds. When a round ends without a receipt the waiter
    sleeps ``retry_pause`` seconds and starts a fresh round, for at most
    ``max_retry_rounds`` rounds. Read errors count as "not yet mined".
    A reverted receipt is final and is never polled again.
    """

    def __init__(self, ledger, poll_interval: float = 3.0, max_poll_attempts: int = 20,
                 max_retry_rounds: int = 3, retry_pause: float = 10.0):
        self.ledger = ledger
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.max_retry_rounds = max_retry_rounds
        self.retry_pause = retry_pause

    async def _poll_round(self, tx_hash: str):
        for attempt in range(self.max_poll_attempts):
            try:
                receipt = await self.ledger.get_transaction_receipt(tx_hash)
            except Exception as e:
                log.debug(f"Error checking transaction {tx_hash}: {e}")
                receipt = None

            if receipt is not None:
                if receipt.get('status') == 1:
                    return receipt
                raise TransactionReverted(tx_hash)

            # Don't sleep after the last poll of a round
            if attempt + 1 < self.max_poll_attempts:
                await asyncio.sleep(self.poll_interval)
        return None

    async def wait(self, tx_hash: str) -> Dict[str, Any]:
        for round_no in range(1, self.max_retry_rounds + 1):
            receipt = await self._poll_round(tx_hash)
            if receipt is not None:
                return receipt

            if round_no < self.max_retry_rounds:
                log.warning(
                    f"No receipt for {tx_hash} after round {round_no}/{self.max_retry_rounds}, "
                    f"retrying in {self.retry_pause}s"
                )
                await asyncio.sleep(self.retry_pause)

        raise ConfirmationTimeout(tx_hash, self.max_poll_attempts * self.max_retry_rounds)
