"""Client for the token VM JSON-RPC service."""

from __future__ import annotations

import base64
import itertools
import json
import logging
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from typing import Any, Optional

from tokenvm.encoding import id_to_string, parse_address
from tokenvm.errors import AssetNotFoundError, TokenVMError, TxNotFoundError
from tokenvm.rpc_server import JSON_RPC_ENDPOINT, NAME
from tokenvm.storage import AssetRecord, TransactionRecord

_log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.5


class RPCError(TokenVMError):
    """The service answered with an error, or not with a valid reply."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class JSONRPCClient:
    """Queries the token API of one node."""

    def __init__(self, uri: str, chain_id: bytes, name: str = NAME) -> None:
        self.uri = uri.removesuffix("/") + JSON_RPC_ENDPOINT
        self.chain_id = bytes(chain_id)
        self._name = name
        self._ids = itertools.count(1)
        self._genesis: Any = None

    def _request(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        body = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": f"{self._name}.{method}",
                "params": params if params is not None else {},
                "id": next(self._ids),
            }
        ).encode("utf-8")
        request = urllib.request.Request(
            self.uri,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", "replace")
            raise RPCError(f"HTTP {exc.code}: {detail}", code=exc.code) from exc
        try:
            reply = json.loads(raw)
        except ValueError as exc:
            raise RPCError(f"invalid reply: {exc}") from exc
        if not isinstance(reply, dict):
            raise RPCError("invalid reply")
        error = reply.get("error")
        if error:
            if isinstance(error, dict):
                raise RPCError(str(error.get("message", "")), error.get("code"), error.get("data"))
            raise RPCError(str(error))
        return reply.get("result") or {}

    def genesis(self) -> Any:
        """Return the chain genesis, fetched once and then cached."""
        if self._genesis is not None:
            return self._genesis
        result = self._request("genesis")
        self._genesis = result.get("genesis")
        return self._genesis

    def tx(self, tx_id: bytes) -> Optional[TransactionRecord]:
        """Return the transaction's result, or None if the node has not seen it."""
        try:
            result = self._request("tx", {"txId": id_to_string(tx_id)})
        except RPCError as exc:
            if str(TxNotFoundError()) in exc.message:
                return None
            raise
        return TransactionRecord(
            int(result.get("timestamp", 0)),
            bool(result.get("success", False)),
            int(result.get("units", 0)),
        )

    def asset(self, asset: bytes) -> Optional[AssetRecord]:
        """Return the asset description, or None if the asset does not exist."""
        try:
            result = self._request("asset", {"asset": id_to_string(asset)})
        except RPCError as exc:
            if str(AssetNotFoundError()) in exc.message:
                return None
            raise
        metadata = result.get("metadata")
        return AssetRecord(
            base64.b64decode(metadata) if metadata else b"",
            int(result.get("supply", 0)),
            parse_address(result.get("owner", "")),
            bool(result.get("warp", False)),
        )

    def balance(self, address: str, asset: bytes) -> int:
        result = self._request("balance", {"address": address, "asset": id_to_string(asset)})
        return int(result.get("amount", 0))

    def orders(self, pair: str) -> list[Any]:
        result = self._request("orders", {"pair": pair})
        return list(result.get("orders") or [])

    def loan(self, asset: bytes, destination: bytes) -> int:
        result = self._request(
            "loan",
            {"asset": id_to_string(asset), "destination": id_to_string(destination)},
        )
        return int(result.get("amount", 0))

    @staticmethod
    def _wait(check: Callable[[], bool], timeout: Optional[float], what: str) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not check():
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"timed out waiting for {what}")
            time.sleep(_POLL_INTERVAL)

    def wait_for_balance(
        self,
        address: str,
        asset: bytes,
        minimum: int,
        timeout: Optional[float] = None,
    ) -> None:
        """Block until the address holds at least ``minimum`` of the asset."""

        def reached() -> bool:
            if self.balance(address, asset) >= minimum:
                return True
            _log.info("waiting for %d balance: %s", minimum, address)
            return False

        self._wait(reached, timeout, f"balance of {address}")

    def wait_for_transaction(self, tx_id: bytes, timeout: Optional[float] = None) -> bool:
        """Block until the transaction is known and return whether it succeeded."""
        found: list[TransactionRecord] = []

        def seen() -> bool:
            record = self.tx(tx_id)
            if record is None:
                return False
            found.append(record)
            return True

        self._wait(seen, timeout, f"transaction {id_to_string(tx_id)}")
        return found[-1].success