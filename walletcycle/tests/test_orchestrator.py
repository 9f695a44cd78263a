"""Fund-then-return flow for a single batch."""

import unittest
from decimal import Decimal
from unittest import mock

from walletcycle.accounts import AccountFactory, account_from_key
from walletcycle.confirm import ConfirmationWaiter
from walletcycle.errors import InvalidParameterError, NonceBaselineError
from walletcycle.models import Stage
from walletcycle.orchestrator import BatchOrchestrator, to_wei
from walletcycle.tests.fakes import FakeLedger

FUNDER_KEY = "0x47e179ec197488593b187f80a00eb0da91f1b9d0b13f8733639f19c30a34926a"
GWEI = 10 ** 9


class BatchOrchestratorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.ledger = FakeLedger(gas_price=10 * GWEI, pending_count=4)
        self.source = account_from_key(FUNDER_KEY)
        waiter = ConfirmationWaiter(self.ledger, poll_interval=0, max_poll_attempts=2,
                                    max_retry_rounds=2, retry_pause=0)
        self.orchestrator = BatchOrchestrator(self.ledger, self.source, waiter,
                                              max_concurrent=2, gas_limit=21000, return_percent=95)
        self.accounts = AccountFactory().create_accounts(3)

    async def test_all_transfers_succeed(self) -> None:
        outcomes = await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))

        self.assertEqual([o.account for o in outcomes.fund_outcomes], self.accounts)
        self.assertEqual([o.account for o in outcomes.return_outcomes], self.accounts)
        self.assertTrue(all(o.success for o in outcomes.fund_outcomes + outcomes.return_outcomes))
        self.assertTrue(all(o.stage is Stage.FUNDING for o in outcomes.fund_outcomes))
        self.assertTrue(all(o.stage is Stage.RETURNING for o in outcomes.return_outcomes))
        self.assertTrue(all(o.tx_hash for o in outcomes.return_outcomes))
        self.assertEqual(self.ledger.gas_price_calls, 1)

    async def test_funding_nonces_are_contiguous_from_baseline(self) -> None:
        await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))

        nonces = sorted(i.nonce for i in self.ledger.intents_from(self.source.address))
        self.assertEqual(nonces, [4, 5, 6])
        self.assertEqual(self.orchestrator.nonces.issued, [4, 5, 6])

    async def test_return_transfers_use_nonce_zero_and_own_signer(self) -> None:
        await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))

        for account in self.accounts:
            (intent,) = self.ledger.intents_from(account.address)
            self.assertEqual(intent.nonce, 0)
            self.assertIs(intent.sender, account)
            self.assertEqual(intent.to, self.source.address)

    async def test_return_value_reserves_gas(self) -> None:
        await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))

        fund_value = to_wei("0.001")
        nominal = fund_value * 95 // 100
        gas_cost = 21000 * 10 * GWEI
        returns = [i for i in self.ledger.submitted.values() if i.to == self.source.address]
        self.assertEqual(len(returns), 3)
        for intent in returns:
            self.assertEqual(intent.value, nominal - gas_cost)
            self.assertGreater(intent.value, 0)
            self.assertEqual(intent.gas_price, 10 * GWEI)
        funds = self.ledger.intents_from(self.source.address)
        self.assertTrue(all(i.value == fund_value for i in funds))

    def test_fractional_return_percent_is_not_truncated(self) -> None:
        fund_value = 10 ** 18

        for percent in (Decimal("95.5"), 95.5, "95.5"):
            with self.subTest(percent=percent):
                self.assertEqual(self.orchestrator.return_value(fund_value, percent, 0), 955 * 10 ** 15)
        self.assertEqual(self.orchestrator.return_value(fund_value, 95, 0), 95 * 10 ** 16)
        self.assertEqual(self.orchestrator.return_value(fund_value, Decimal("95.5"), GWEI),
                         955 * 10 ** 15 - 21000 * GWEI)

    async def test_rejected_funding_skips_return(self) -> None:
        rejected = self.accounts[1]
        self.ledger.reject_to.add(rejected.address)

        outcomes = await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))

        failed = [o for o in outcomes.fund_outcomes if not o.success]
        self.assertEqual([o.account for o in failed], [rejected])
        self.assertIn("insufficient funds", failed[0].error)
        self.assertIsNone(failed[0].tx_hash)
        self.assertNotIn(rejected, [o.account for o in outcomes.return_outcomes])
        self.assertEqual(len(outcomes.return_outcomes), 2)

    async def test_signing_failure_is_a_stage_failure(self) -> None:
        self.ledger.sign_fail_to.add(self.accounts[0].address)

        outcomes = await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))

        self.assertFalse(outcomes.fund_outcomes[0].success)
        self.assertEqual(outcomes.fund_outcomes[0].error, "signer unavailable")
        self.assertEqual(len(outcomes.return_outcomes), 2)

    async def test_reverted_return_is_recorded_with_hash(self) -> None:
        self.ledger.revert_to.add(self.source.address)

        outcomes = await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))

        self.assertTrue(all(o.success for o in outcomes.fund_outcomes))
        for outcome in outcomes.return_outcomes:
            self.assertFalse(outcome.success)
            self.assertIsNotNone(outcome.tx_hash)
            self.assertIn("Transaction failed", outcome.error)

    async def test_confirmation_timeout_is_recorded_not_raised(self) -> None:
        stuck = self.accounts[2]
        self.ledger.pending_to.add(stuck.address)

        outcomes = await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))

        outcome = outcomes.fund_outcomes[2]
        self.assertFalse(outcome.success)
        self.assertIn("timeout", outcome.error)
        # Polled 2 rounds x 2 attempts, never resubmitted
        self.assertEqual(self.ledger.receipt_polls[outcome.tx_hash], 4)
        self.assertEqual(len(self.ledger.intents_from(self.source.address)), 3)
        self.assertEqual(len(outcomes.return_outcomes), 2)

    async def test_return_that_cannot_cover_gas_aborts_before_submitting(self) -> None:
        with self.assertRaises(InvalidParameterError):
            await self.orchestrator.process_batch(self.accounts, Decimal("0.0000001"))
        self.assertEqual(self.ledger.submitted, {})

    async def test_nonce_baseline_failure_propagates(self) -> None:
        self.ledger.fail_nonce_fetch = True

        with self.assertRaises(NonceBaselineError):
            await self.orchestrator.process_batch(self.accounts, Decimal("0.001"))
        self.assertEqual(self.ledger.submitted, {})

    async def test_concurrency_bound_applies_to_funding(self) -> None:
        in_flight = 0
        peak = 0
        original = self.orchestrator.waiter.wait

        async def tracking_wait(tx_hash):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                return await original(tx_hash)
            finally:
                in_flight -= 1

        accounts = AccountFactory().create_accounts(5)
        with mock.patch.object(self.orchestrator.waiter, "wait", side_effect=tracking_wait):
            outcomes = await self.orchestrator.process_batch(accounts, Decimal("0.001"))

        self.assertEqual(peak, 2)
        self.assertEqual([o.account for o in outcomes.fund_outcomes], accounts)


if __name__ == "__main__":
    unittest.main()
