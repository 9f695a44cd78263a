"""Slices a run into batches and accumulates the final report."""

import asyncio
import logging
import math
from decimal import Decimal
from numbers import Real

from web3 import Web3

from walletcycle.accounts import AccountFactory
from walletcycle.confirm import ConfirmationWaiter
from walletcycle.errors import InsufficientBalanceError, InvalidParameterError, WalletCycleError
from walletcycle.models import BatchReport
from walletcycle.orchestrator import BatchOrchestrator, to_wei

log = logging.getLogger("walletcycle.controller")


class RunController:
    def __init__(self, ledger, orchestrator: BatchOrchestrator, factory: AccountFactory = None,
                 batch_size: int = 50, batch_pause: float = 1.0,
                 gas_reserve_per_account=Decimal("0.01")):
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
            raise InvalidParameterError(f"batch_size must be a positive integer, got {batch_size!r}")
        self.ledger = ledger
        self.orchestrator = orchestrator
        self.factory = factory or AccountFactory()
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.gas_reserve_per_account = gas_reserve_per_account

    @classmethod
    def from_settings(cls, ledger, source, settings, factory: AccountFactory = None) -> "RunController":
        waiter = ConfirmationWaiter(
            ledger,
            poll_interval=settings.poll_interval,
            max_poll_attempts=settings.max_poll_attempts,
            max_retry_rounds=settings.max_retry_rounds,
            retry_pause=settings.retry_pause,
        )
        orchestrator = BatchOrchestrator(
            ledger,
            source,
            waiter,
            max_concurrent=settings.max_concurrent,
            gas_limit=settings.gas_limit,
            return_percent=settings.return_percent,
        )
        return cls(
            ledger,
            orchestrator,
            factory=factory,
            batch_size=settings.batch_size,
            batch_pause=settings.batch_pause,
            gas_reserve_per_account=settings.gas_reserve_per_account,
        )

    @staticmethod
    def _validate(total_count, fund_amount) -> None:
        if isinstance(total_count, bool) or not isinstance(total_count, int) or total_count <= 0:
            raise InvalidParameterError(f"Account count must be a positive integer, got {total_count!r}")
        if isinstance(fund_amount, bool) or not isinstance(fund_amount, (Real, Decimal)):
            raise InvalidParameterError(f"Fund amount must be a number, got {fund_amount!r}")
        try:
            positive = math.isfinite(fund_amount) and fund_amount > 0
            if positive:
                to_wei(fund_amount)
        except (ValueError, ArithmeticError) as e:
            raise InvalidParameterError(f"Fund amount out of range: {fund_amount!r} ({e})") from e
        if not positive:
            raise InvalidParameterError(f"Fund amount must be positive, got {fund_amount!r}")

    def required_total(self, total_count: int, fund_amount) -> int:
        """Conservative upper bound, in wei, of what the run can spend."""
        return (to_wei(fund_amount) + to_wei(self.gas_reserve_per_account)) * total_count

    async def check_source_balance(self, required_wei: int) -> int:
        balance = await self.ledger.get_balance(self.orchestrator.source.address)
        if balance < required_wei:
            required_eth = Web3.from_wei(required_wei, 'ether')
            available_eth = Web3.from_wei(balance, 'ether')
            raise InsufficientBalanceError(
                required_wei,
                balance,
                f"Insufficient balance. Required: {required_eth} ETH, Available: {available_eth} ETH",
            )
        return balance

    async def run(self, total_count: int, fund_amount) -> BatchReport:
        self._validate(total_count, fund_amount)

        required = self.required_total(total_count, fund_amount)
        balance = await self.check_source_balance(required)
        log.info(
            f"Source {self.orchestrator.source.address} balance {Web3.from_wei(balance, 'ether')} ETH, "
            f"run needs at most {Web3.from_wei(required, 'ether')} ETH"
        )

        report = BatchReport()
        total_batches = (total_count + self.batch_size - 1) // self.batch_size

        for i in range(0, total_count, self.batch_size):
            size = min(self.batch_size, total_count - i)
            log.info(f"Processing batch {i // self.batch_size + 1}/{total_batches} ({size} accounts)")

            try:
                accounts = self.factory.create_accounts(size)
                report.add_created(accounts)
                outcomes = await self.orchestrator.process_batch(accounts, fund_amount)
            except WalletCycleError as e:
                log.error(f"Run stopped in batch {i // self.batch_size + 1}/{total_batches}: {e}")
                e.report = report
                raise

            report.record_batch(outcomes)
            log.info(f"  Successful: {len(report.successful)}, Failed: {len(report.failed)}")

            # Small delay between batches to avoid overwhelming the node
            if i + self.batch_size < total_count:
                await asyncio.sleep(self.batch_pause)

        return report
