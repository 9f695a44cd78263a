"""Data structures shared by the orchestrator and the run controller."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Stage(str, Enum):
    FUNDING = "funding"
    RETURNING = "returning"


@dataclass(frozen=True)
class Account:
    """A fresh keypair-backed address.

    ``signer`` is an eth_account LocalAccount; it is kept out of repr so
    private keys never end up in logs.
    """

    address: str
    signer: Any = field(repr=False, compare=False)


@dataclass(frozen=True)
class TransferIntent:
    sender: Account
    to: str
    value: int  # wei
    gas: int
    gas_price: int  # wei
    nonce: int

    def to_tx(self, chain_id: int) -> Dict[str, Any]:
        """Legacy transaction dict as accepted by eth_account."""
        return {
            'nonce': self.nonce,
            'to': self.to,
            'value': self.value,
            'gas': self.gas,
            'gasPrice': self.gas_price,
            'chainId': chain_id,
        }


@dataclass(frozen=True)
class SubmissionOutcome:
    account: Account
    stage: Stage
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchOutcomes:
    fund_outcomes: Tuple[SubmissionOutcome, ...]
    return_outcomes: Tuple[SubmissionOutcome, ...]


@dataclass(frozen=True)
class FailedOperation:
    address: str
    error: str
    stage: Stage


@dataclass
class BatchReport:
    """Running totals for a whole run. Only ever appended to."""

    successful: List[str] = field(default_factory=list)
    failed: List[FailedOperation] = field(default_factory=list)
    created: int = 0
    accounts: List[Account] = field(default_factory=list, repr=False)

    def add_created(self, accounts: List[Account]) -> None:
        self.accounts.extend(accounts)
        self.created += len(accounts)

    def record_batch(self, outcomes: BatchOutcomes) -> None:
        # Funding failures
        for outcome in outcomes.fund_outcomes:
            if not outcome.success:
                self.failed.append(FailedOperation(
                    address=outcome.account.address,
                    error=outcome.error or "unknown error",
                    stage=Stage.FUNDING,
                ))

        # Return failures and successes
        for outcome in outcomes.return_outcomes:
            if outcome.success:
                self.successful.append(outcome.account.address)
            else:
                self.failed.append(FailedOperation(
                    address=outcome.account.address,
                    error=outcome.error or "unknown error",
                    stage=Stage.RETURNING,
                ))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'successful': list(self.successful),
            'failed': [
                {'address': f.address, 'error': f.error, 'stage': f.stage.value}
                for f in self.failed
            ],
            'created': self.created,
        }
