"""Fresh account generation backed by eth_account."""

import logging
from typing import List

from eth_account import Account as EthAccount

from walletcycle.errors import InvalidParameterError, KeyGenerationError
from walletcycle.models import Account

log = logging.getLogger("walletcycle.accounts")


def account_from_key(private_key: str) -> Account:
    """Wrap an existing private key, e.g. the funder's."""
    try:
        signer = EthAccount.from_key(private_key)
    except Exception as e:
        raise KeyGenerationError(f"Invalid private key: {e}") from e
    return Account(address=signer.address, signer=signer)


class AccountFactory:
    """Creates brand new accounts on demand. No network I/O."""

    def __init__(self, key_source=EthAccount.create):
        self._key_source = key_source

    def create_account(self) -> Account:
        try:
            signer = self._key_source()
        except Exception as e:
            raise KeyGenerationError(f"Key generation failed: {e}") from e
        return Account(address=signer.address, signer=signer)

    def create_accounts(self, count: int) -> List[Account]:
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise InvalidParameterError(f"count must be a positive integer, got {count!r}")

        accounts = [self.create_account() for _ in range(count)]
        log.debug(f"Generated {count} accounts")
        return accounts
