"""Error taxonomy.

Fatal errors abort the whole run. Stage errors are caught by the orchestrator
and recorded against a single account. RpcError is raised by the ledger client
and is transient when it happens during a confirmation poll.
"""


class WalletCycleError(Exception):
    """Base class for all walletcycle errors.

    ``report`` is set by RunController.run when the run stops after some
    batches were already sent, so those transfers are not lost from view.
    """

    report = None


class FatalError(WalletCycleError):
    """Aborts the run; unwinds to the caller of RunController.run."""


class InvalidParameterError(FatalError, ValueError):
    """Bad count, amount or configuration knob."""


class InsufficientBalanceError(FatalError):
    def __init__(self, required_wei: int, available_wei: int, message: str):
        super().__init__(message)
        self.required_wei = required_wei
        self.available_wei = available_wei


class NonceBaselineError(FatalError):
    """The source account's pending transaction count could not be read."""


class KeyGenerationError(FatalError):
    """The key source failed to produce an account."""


class StageError(WalletCycleError):
    """Failure of one funding or returning transfer."""

    def __init__(self, tx_hash: str, message: str):
        super().__init__(message)
        self.tx_hash = tx_hash


class TransactionReverted(StageError):
    def __init__(self, tx_hash: str):
        super().__init__(tx_hash, f"Transaction failed: {tx_hash}")


class ConfirmationTimeout(StageError):
    def __init__(self, tx_hash: str, attempts: int):
        super().__init__(
            tx_hash,
            f"Transaction confirmation timeout: {tx_hash} (no receipt after {attempts} polls)",
        )
        self.attempts = attempts


class RpcError(WalletCycleError):
    """JSON-RPC error response or transport failure."""

    def __init__(self, method: str, message: str, code=None):
        detail = f"{method} failed: {message}"
        if code is not None:
            detail = f"{method} failed ({code}): {message}"
        super().__init__(detail)
        self.method = method
        self.code = code
        self.message = message
