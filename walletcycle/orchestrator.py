"""Fund-then-return processing of one batch of fresh accounts."""

import logging
from decimal import Decimal
from fractions import Fraction
from typing import List, Optional, Sequence

from web3 import Web3

from walletcycle.confirm import ConfirmationWaiter
from walletcycle.errors import InvalidParameterError, StageError
from walletcycle.gate import run_bounded
from walletcycle.models import Account, BatchOutcomes, Stage, SubmissionOutcome, TransferIntent
from walletcycle.nonce import NonceSequencer

log = logging.getLogger("walletcycle.orchestrator")


def to_wei(amount_eth) -> int:
    """ETH amount (int, float, str or Decimal) to wei without float rounding noise."""
    return int(Web3.to_wei(Decimal(str(amount_eth)), 'ether'))


class BatchOrchestrator:
    """Owns the source account, its nonce sequencer and the per-batch transfer flow.

    Every submission is attempted at most once; a transaction the ledger has
    accepted is only ever polled afterwards, never re-sent.
    """

    def __init__(self, ledger, source: Account, waiter: ConfirmationWaiter,
                 max_concurrent: int = 10, gas_limit: int = 21000, return_percent: int = 95):
        self.ledger = ledger
        self.source = source
        self.waiter = waiter
        self.max_concurrent = max_concurrent
        self.gas_limit = gas_limit
        self.return_percent = return_percent
        self.nonces = NonceSequencer(ledger, source.address)

    def return_value(self, fund_value: int, return_percent, gas_price: int) -> int:
        """Nominal share of ``fund_value`` minus the gas the return transfer burns."""
        nominal = int(fund_value * Fraction(str(return_percent)) // 100)
        return nominal - self.gas_limit * gas_price

    async def _transfer(self, account: Account, stage: Stage, intent: TransferIntent) -> SubmissionOutcome:
        tx_hash = None
        try:
            raw = self.ledger.sign(intent)
            tx_hash = await self.ledger.send_raw_transaction(raw)
            log.debug(f"{stage.value} {account.address[:10]}... nonce={intent.nonce} tx={tx_hash}")
            await self.waiter.wait(tx_hash)
        except StageError as e:
            return SubmissionOutcome(account, stage, False, tx_hash=e.tx_hash, error=str(e))
        except Exception as e:
            log.warning(f"{stage.value} failed for {account.address}: {e}")
            return SubmissionOutcome(account, stage, False, tx_hash=tx_hash, error=str(e))
        return SubmissionOutcome(account, stage, True, tx_hash=tx_hash)

    async def _fund(self, account: Account, value: int, gas_price: int) -> SubmissionOutcome:
        intent = TransferIntent(
            sender=self.source,
            to=account.address,
            value=value,
            gas=self.gas_limit,
            gas_price=gas_price,
            nonce=await self.nonces.next_nonce(),
        )
        return await self._transfer(account, Stage.FUNDING, intent)

    async def _return(self, account: Account, value: int, gas_price: int) -> SubmissionOutcome:
        intent = TransferIntent(
            sender=account,
            to=self.source.address,
            value=value,
            gas=self.gas_limit,
            gas_price=gas_price,
            nonce=NonceSequencer.new_wallet_nonce(),
        )
        return await self._transfer(account, Stage.RETURNING, intent)

    def _collect(self, accounts: Sequence[Account], stage: Stage, results) -> List[SubmissionOutcome]:
        # Tasks catch their own errors; anything left is a bug, still recorded per account
        outcomes = []
        for account, result in zip(accounts, results):
            if isinstance(result, BaseException):
                result = SubmissionOutcome(account, stage, False, error=str(result) or repr(result))
            outcomes.append(result)
        return outcomes

    async def process_batch(self, accounts: Sequence[Account], fund_amount,
                            return_percent: Optional[int] = None) -> BatchOutcomes:
        if return_percent is None:
            return_percent = self.return_percent

        # Gas price is fetched once and held for the whole batch
        gas_price = await self.ledger.get_gas_price()
        await self.nonces.prime()

        fund_value = to_wei(fund_amount)
        return_value = self.return_value(fund_value, return_percent, gas_price)
        if return_value <= 0:
            raise InvalidParameterError(
                f"Return of {return_percent}% of {fund_amount} ETH does not cover "
                f"return gas ({self.gas_limit} gas at {gas_price} wei)"
            )

        log.info(
            f"Funding {len(accounts)} accounts with {fund_amount} ETH each "
            f"(gas price {Web3.from_wei(gas_price, 'gwei')} gwei)"
        )
        results = await run_bounded(
            self.max_concurrent,
            [lambda a=a: self._fund(a, fund_value, gas_price) for a in accounts],
        )
        fund_outcomes = self._collect(accounts, Stage.FUNDING, results)

        funded = [o.account for o in fund_outcomes if o.success]
        log.info(f"Funded {len(funded)}/{len(accounts)}; returning {return_value} wei from each")

        results = await run_bounded(
            self.max_concurrent,
            [lambda a=a: self._return(a, return_value, gas_price) for a in funded],
        )
        return_outcomes = self._collect(funded, Stage.RETURNING, results)

        return BatchOutcomes(tuple(fund_outcomes), tuple(return_outcomes))
