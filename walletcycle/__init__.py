"""Batch fund-and-return transfers for fresh EVM accounts."""

from walletcycle.controller import RunController
from walletcycle.models import BatchReport, FailedOperation, Stage

__version__ = "0.1.0"

__all__ = [
    "BatchReport",
    "FailedOperation",
    "RunController",
    "Stage",
    "__version__",
]
