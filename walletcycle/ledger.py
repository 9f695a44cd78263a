"""JSON-RPC ledger client.

Reads and submissions go straight to the node as JSON-RPC 2.0 payloads over a
pooled aiohttp session; signing is done locally with eth_account.
"""

import itertools
import logging
from typing import Any, Dict, Optional, Protocol

import aiohttp
from aiohttp import TCPConnector
from web3 import Web3

from walletcycle.errors import RpcError
from walletcycle.models import TransferIntent

log = logging.getLogger("walletcycle.ledger")


class LedgerClient(Protocol):
    async def get_balance(self, address: str) -> int: ...
    async def get_gas_price(self) -> int: ...
    async def get_transaction_count(self, address: str, block: str = "pending") -> int: ...
    async def send_raw_transaction(self, raw: bytes) -> str: ...
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]: ...
    async def get_chain_id(self) -> int: ...
    def sign(self, intent: TransferIntent) -> bytes: ...


def _quantity(value) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


def _normalize_receipt(receipt: Dict[str, Any]) -> Dict[str, Any]:
    receipt = dict(receipt)
    for key in ('status', 'blockNumber', 'gasUsed', 'effectiveGasPrice'):
        if receipt.get(key) is not None:
            receipt[key] = _quantity(receipt[key])
    return receipt


class JsonRpcLedgerClient:
    def __init__(self, rpc_url: str, chain_id: Optional[int] = None, request_timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)
        # Connection pool settings for many concurrent submissions
        self.connector_settings = {
            'limit': 200,
            'limit_per_host': 200,
            'ttl_dns_cache': 300,
            'enable_cleanup_closed': True,
        }

    async def connect(self) -> "JsonRpcLedgerClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(
                connector=TCPConnector(**self.connector_settings),
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )
        if self.chain_id is None:
            try:
                self.chain_id = await self.get_chain_id()
            except Exception:
                # __aexit__ does not run when __aenter__ fails
                await self.close()
                raise
        log.info(f"Connected to {self.rpc_url} (chain id {self.chain_id})")
        return self

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _call(self, method: str, params: list):
        if self._session is None:
            raise RpcError(method, "client is not connected")

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }
        try:
            async with self._session.post(self.rpc_url, json=payload) as response:
                response.raise_for_status()
                result = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RpcError(method, str(e)) from e
        except TimeoutError as e:
            raise RpcError(method, "request timed out") from e
        except ValueError as e:
            raise RpcError(method, "invalid JSON response") from e

        if not isinstance(result, dict):
            raise RpcError(method, f"malformed response: {result!r}")
        if 'error' in result and result['error'] is not None:
            error = result['error']
            raise RpcError(method, error.get('message', 'Unknown error'), error.get('code'))
        if 'result' not in result:
            raise RpcError(method, f"malformed response: {result!r}")
        return result['result']

    async def get_chain_id(self) -> int:
        return _quantity(await self._call("eth_chainId", []))

    async def get_balance(self, address: str) -> int:
        return _quantity(await self._call("eth_getBalance", [address, "latest"]))

    async def get_gas_price(self) -> int:
        return _quantity(await self._call("eth_gasPrice", []))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        if block not in ("latest", "pending"):
            raise ValueError(f"block must be 'latest' or 'pending', got {block!r}")
        return _quantity(await self._call("eth_getTransactionCount", [address, block]))

    async def send_raw_transaction(self, raw: bytes) -> str:
        return await self._call("eth_sendRawTransaction", [Web3.to_hex(raw)])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        receipt = await self._call("eth_getTransactionReceipt", [tx_hash])
        if receipt is None:
            return None
        return _normalize_receipt(receipt)

    def sign(self, intent: TransferIntent) -> bytes:
        if self.chain_id is None:
            raise RpcError("sign", "chain id unknown, call connect() first")
        signed = intent.sender.signer.sign_transaction(intent.to_tx(self.chain_id))
        return bytes(signed.raw_transaction)
