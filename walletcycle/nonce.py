"""Sequential nonce issuance for the shared funding account.

The ledger only includes transactions for an account when its nonces form a
gap-free run, so concurrent funding tasks must never draw the same value.
The baseline is fetched once (pending count) and then incremented locally
under an asyncio.Lock for the lifetime of the sequencer.
"""

import asyncio
import logging
from typing import List, Optional

from walletcycle.errors import NonceBaselineError

log = logging.getLogger("walletcycle.nonce")


class NonceSequencer:
    def __init__(self, ledger, address: str):
        self._ledger = ledger
        self._address = address
        self._lock = asyncio.Lock()
        self._next: Optional[int] = None
        self.issued: List[int] = []

    @property
    def address(self) -> str:
        return self._address

    async def _fetch_baseline(self) -> None:
        try:
            self._next = await self._ledger.get_transaction_count(self._address, "pending")
        except Exception as e:
            raise NonceBaselineError(
                f"Could not read pending transaction count for {self._address}: {e}"
            ) from e
        log.info(f"Nonce baseline for {self._address}: {self._next}")

    async def prime(self) -> None:
        """Fetch the baseline now if it hasn't been fetched yet."""
        async with self._lock:
            if self._next is None:
                await self._fetch_baseline()

    async def next_nonce(self) -> int:
        async with self._lock:
            if self._next is None:
                await self._fetch_baseline()
            nonce = self._next
            self._next += 1
            self.issued.append(nonce)
            return nonce

    @staticmethod
    def new_wallet_nonce() -> int:
        """Accounts that have never sent a transaction start at nonce 0."""
        return 0
