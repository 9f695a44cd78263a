#!/usr/bin/env python3
"""
walletcycle: fund a pool of fresh accounts and send most of it back.

Usage:
    walletcycle --count <n> --amount <eth> [--config <path>] [--rpc-url <url>]
                [--batch-size <n>] [--max-concurrent <n>] [--return-percent <p>]

The funder key is read from WALLETCYCLE_FUNDER_PRIVATE_KEY (or the
``funder_private_key`` entry of the config file).

Examples:
    # 100 accounts, 0.001 ETH each, against a local node
    walletcycle --count 100 --amount 0.001

    # Smaller batches and fewer in-flight submissions
    walletcycle --count 1000 --amount 0.001 --batch-size 20 --max-concurrent 5
"""

import argparse
import asyncio
import dataclasses
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path

from walletcycle.accounts import account_from_key
from walletcycle.config import load_settings
from walletcycle.controller import RunController
from walletcycle.errors import FatalError, InvalidParameterError, WalletCycleError
from walletcycle.ledger import JsonRpcLedgerClient
from walletcycle.logging_config import setup_logging
from walletcycle.models import BatchReport

log = logging.getLogger("walletcycle.cli")


def _amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="walletcycle",
        description="Create fresh accounts, fund them from one source and return a share of the funds.",
    )
    parser.add_argument("--count", type=int, required=True, help="Total number of accounts to create")
    parser.add_argument("--amount", type=_amount, required=True, help="ETH to send to each account")
    parser.add_argument("--config", type=Path, default=None, help="TOML file with a [walletcycle] table")
    parser.add_argument("--rpc-url", default=None, help="JSON-RPC endpoint (overrides config)")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--max-concurrent", type=int, default=None)
    parser.add_argument("--return-percent", type=int, default=None)
    return parser


def apply_overrides(settings, args: argparse.Namespace):
    overrides = {
        'rpc_url': args.rpc_url,
        'batch_size': args.batch_size,
        'max_concurrent': args.max_concurrent,
        'return_percent': args.return_percent,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return dataclasses.replace(settings, **overrides).validate()


def print_report(report: BatchReport) -> None:
    print("Wallet creation completed:")
    print(f"Total wallets created: {report.created}")
    print(f"Successful transactions: {len(report.successful)}")
    print(f"Failed transactions: {len(report.failed)}")

    if report.failed:
        print("Failed transactions details:")
        for failure in report.failed:
            print(f"  [{failure.stage.value}] {failure.address}: {failure.error}")


def print_partial_report(report) -> None:
    # Batches before the failure were already broadcast
    if report is not None and report.created:
        print("Run stopped early, transfers sent so far:")
        print_report(report)


async def run(settings, count: int, amount: Decimal) -> BatchReport:
    if not settings.funder_private_key:
        raise InvalidParameterError("No funder key: set WALLETCYCLE_FUNDER_PRIVATE_KEY")
    source = account_from_key(settings.funder_private_key)
    log.info(f"Funder address: {source.address}")

    async with JsonRpcLedgerClient(settings.rpc_url, request_timeout=settings.request_timeout) as ledger:
        controller = RunController.from_settings(ledger, source, settings)
        return await controller.run(count, amount)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = apply_overrides(load_settings(args.config), args)
    except (WalletCycleError, OSError, ValueError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    setup_logging(settings.log_file)

    try:
        report = asyncio.run(run(settings, args.count, args.amount))
    except FatalError as e:
        print(f"Error in wallet management: {e}")
        print_partial_report(e.report)
        return 1
    except WalletCycleError as e:
        print(f"Wallet creation failed: {e}")
        print_partial_report(e.report)
        return 1

    print_report(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
