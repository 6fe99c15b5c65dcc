"""Blocking JSON-RPC access through web3.

Every method here blocks on the network and is meant to run in a worker
thread (``asyncio.to_thread``).  Transport problems surface as
:class:`NetworkError`, on-chain reverts as :class:`RevertError`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple

import requests
from eth_account import Account
from eth_utils import decode_hex, to_checksum_address
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from .errors import NetworkError, RevertError
from .trace import TraceRequest

logger = logging.getLogger(__name__)

GAS_HEADROOM = 1.2


def _revert_bytes(data: Any) -> Optional[bytes]:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str) and data.startswith("0x"):
        return decode_hex(data)
    if isinstance(data, dict):
        return _revert_bytes(data.get("data"))
    return None


@contextmanager
def rpc_errors(operation: str) -> Iterator[None]:
    """Translate web3/requests failures raised inside the block."""

    try:
        yield
    except ContractLogicError as exc:
        raise RevertError(str(exc), _revert_bytes(getattr(exc, "data", None))) from exc
    except requests.exceptions.RequestException as exc:
        raise NetworkError(f"{operation}: {exc}", retryable=True) from exc
    except (Web3Exception, ValueError) as exc:
        raise NetworkError(f"{operation}: {exc}", retryable=False) from exc


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


def normalise_receipt(receipt: Any) -> Dict[str, Any]:
    """Plain JSON-able copy of a web3 receipt."""

    logs = []
    for entry in receipt.get("logs", []):
        logs.append(
            {
                "address": entry.get("address"),
                "topics": [_hex(topic) for topic in entry.get("topics", [])],
                "data": _hex(entry.get("data", b"")),
                "logIndex": entry.get("logIndex"),
            }
        )
    return {
        "transactionHash": _hex(receipt.get("transactionHash", "")),
        "status": int(receipt.get("status", 0)),
        "blockNumber": receipt.get("blockNumber"),
        "gasUsed": receipt.get("gasUsed"),
        "from": receipt.get("from"),
        "to": receipt.get("to"),
        "contractAddress": receipt.get("contractAddress"),
        "logs": logs,
    }


class ChainClient:
    """Thin wrapper over a lazily constructed :class:`Web3` HTTP client."""

    def __init__(self, rpc_url: str, private_key: Optional[str] = None, *, timeout: int = 10) -> None:
        self.rpc_url = rpc_url
        self._private_key = private_key
        self._timeout = timeout
        self._web3: Optional[Web3] = None

    def _web3_client(self) -> Web3:
        if self._web3 is None:
            self._web3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self._timeout}))
        return self._web3

    @property
    def account(self) -> Optional[str]:
        if not self._private_key:
            return None
        return Account.from_key(self._private_key).address

    def connected(self) -> bool:
        try:
            return bool(self._web3_client().is_connected())
        except requests.exceptions.RequestException:
            return False

    def chain_id(self) -> int:
        with rpc_errors("eth_chainId"):
            return int(self._web3_client().eth.chain_id)

    def block_number(self) -> int:
        with rpc_errors("eth_blockNumber"):
            return int(self._web3_client().eth.block_number)

    def balance(self, address: str) -> int:
        with rpc_errors("eth_getBalance"):
            return int(self._web3_client().eth.get_balance(to_checksum_address(address)))

    def call(self, to: str, data: bytes, sender: Optional[str] = None) -> Tuple[bytes, int]:
        """``eth_call`` pinned to the current head; returns data and block."""

        w3 = self._web3_client()
        tx: Dict[str, Any] = {"to": to_checksum_address(to), "data": _hex(data)}
        if sender:
            tx["from"] = to_checksum_address(sender)
        with rpc_errors("eth_call"):
            block = int(w3.eth.block_number)
            return bytes(w3.eth.call(tx, block)), block

    def estimate_gas(self, to: Optional[str], data: bytes, value: int = 0) -> int:
        tx: Dict[str, Any] = {"data": _hex(data), "value": value}
        if to:
            tx["to"] = to_checksum_address(to)
        if self.account:
            tx["from"] = self.account
        with rpc_errors("eth_estimateGas"):
            return int(self._web3_client().eth.estimate_gas(tx))

    def send(self, to: Optional[str], data: bytes, value: int = 0, gas: Optional[int] = None) -> str:
        """Sign locally and broadcast; returns the transaction hash."""

        if not self._private_key:
            raise NetworkError("no private key configured for signing", retryable=False)
        w3 = self._web3_client()
        sender = self.account
        with rpc_errors("eth_sendRawTransaction"):
            gas_limit = gas if gas is not None else self.estimate_gas(to, data, value)
            tx: Dict[str, Any] = {
                "from": sender,
                "data": _hex(data),
                "value": value,
                "nonce": w3.eth.get_transaction_count(sender, "pending"),
                "gas": int(gas_limit * GAS_HEADROOM),
                "gasPrice": w3.eth.gas_price,
                "chainId": w3.eth.chain_id,
            }
            if to:
                tx["to"] = to_checksum_address(to)
            signed = Account.sign_transaction(tx, self._private_key)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("broadcast %s", _hex(tx_hash))
        return _hex(tx_hash)

    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """The receipt, or ``None`` while the transaction is not mined."""

        with rpc_errors("eth_getTransactionReceipt"):
            try:
                receipt = self._web3_client().eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None
        return normalise_receipt(receipt) if receipt else None

    def revert_data(self, tx_hash: str, block_number: int) -> Optional[bytes]:
        """Replay a failed transaction as a call to recover its revert payload."""

        w3 = self._web3_client()
        with rpc_errors("eth_getTransactionByHash"):
            tx = w3.eth.get_transaction(tx_hash)
        call: Dict[str, Any] = {"from": tx["from"], "data": _hex(tx["input"]), "value": tx.get("value", 0)}
        if tx.get("to"):
            call["to"] = tx["to"]
        try:
            with rpc_errors("eth_call"):
                w3.eth.call(call, max(block_number - 1, 0))
        except RevertError as exc:
            return exc.data
        return None

    def trace(self, request: TraceRequest) -> Any:
        with rpc_errors(request.METHOD):
            response = self._web3_client().provider.make_request(request.METHOD, request.params())
        if response.get("error"):
            error = response["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise NetworkError(f"{request.METHOD}: {message}", retryable=False)
        return response.get("result")


__all__ = ["ChainClient", "normalise_receipt", "rpc_errors"]
