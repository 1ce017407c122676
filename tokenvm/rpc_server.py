"""JSON-RPC service that answers token VM queries from a controller."""

from __future__ import annotations

import base64
import dataclasses
import json
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Optional, Protocol

from tokenvm.encoding import HRP, ID_LEN, id_from_string, parse_address
from tokenvm.encoding import address as encode_address
from tokenvm.errors import AssetNotFoundError, TokenVMError, TxNotFoundError
from tokenvm.storage import AssetRecord, TransactionRecord

JSON_RPC_ENDPOINT = "/tokenapi"
NAME = "tokenvm"
ORDERS_TO_SEND = 128

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000


class Controller(Protocol):
    """What the service needs from the running VM."""

    def genesis(self) -> Any: ...

    def get_transaction(self, tx_id: bytes) -> Optional[TransactionRecord]: ...

    def get_asset_from_state(self, asset: bytes) -> Optional[AssetRecord]: ...

    def get_balance_from_state(self, public_key: bytes, asset: bytes) -> int: ...

    def orders(self, pair: str, limit: int) -> list[Any]: ...

    def get_loan_from_state(self, asset: bytes, destination: bytes) -> int: ...


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _param_id(params: Mapping[str, Any], key: str) -> bytes:
    value = params.get(key)
    if value is None:
        return bytes(ID_LEN)
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return id_from_string(value)


def _param_str(params: Mapping[str, Any], key: str) -> str:
    value = params.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return value


def _error(req_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "error": {"code": code, "message": message, "data": None},
        "id": req_id,
    }


class JSONRPCServer:
    """Serves the token API as JSON-RPC 2.0, callable as a WSGI application."""

    def __init__(self, controller: Controller, name: str = NAME, hrp: str = HRP) -> None:
        self._controller = controller
        self._name = name
        self._hrp = hrp
        self._methods: dict[str, tuple[Callable[[Mapping[str, Any]], tuple], Callable[..., Any]]] = {
            "genesis": (lambda p: (), self.genesis),
            "tx": (lambda p: (_param_id(p, "txId"),), self.tx),
            "asset": (lambda p: (_param_id(p, "asset"),), self.asset),
            "balance": (
                lambda p: (_param_str(p, "address"), _param_id(p, "asset")),
                self.balance,
            ),
            "orders": (lambda p: (_param_str(p, "pair"),), self.orders),
            "loan": (
                lambda p: (_param_id(p, "asset"), _param_id(p, "destination")),
                self.loan,
            ),
        }

    def genesis(self) -> dict[str, Any]:
        return {"genesis": _jsonable(self._controller.genesis())}

    def tx(self, tx_id: bytes) -> dict[str, Any]:
        record = self._controller.get_transaction(tx_id)
        if record is None:
            raise TxNotFoundError()
        return {"timestamp": record.timestamp, "success": record.success, "units": record.units}

    def asset(self, asset: bytes) -> dict[str, Any]:
        record = self._controller.get_asset_from_state(asset)
        if record is None:
            raise AssetNotFoundError()
        return {
            "metadata": base64.b64encode(record.metadata).decode("ascii"),
            "supply": record.supply,
            "owner": encode_address(record.owner, self._hrp),
            "warp": record.warp,
        }

    def balance(self, address: str, asset: bytes) -> dict[str, Any]:
        public_key = parse_address(address, self._hrp)
        return {"amount": self._controller.get_balance_from_state(public_key, asset)}

    def orders(self, pair: str) -> dict[str, Any]:
        found = self._controller.orders(pair, ORDERS_TO_SEND)
        return {"orders": [_jsonable(order) for order in (found or [])]}

    def loan(self, asset: bytes, destination: bytes) -> dict[str, Any]:
        return {"amount": self._controller.get_loan_from_state(asset, destination)}

    def handle(self, request: Any) -> dict[str, Any]:
        """Answer one decoded JSON-RPC request with a response object."""
        if not isinstance(request, Mapping):
            return _error(None, INVALID_REQUEST, "rpc: invalid request")
        req_id = request.get("id")
        method = request.get("method")
        if request.get("jsonrpc") != "2.0" or not isinstance(method, str):
            return _error(req_id, INVALID_REQUEST, "rpc: invalid request")
        service, _, short = method.rpartition(".")
        short = short[:1].lower() + short[1:]
        if service != self._name or short not in self._methods:
            return _error(req_id, METHOD_NOT_FOUND, f"rpc: can't find method {method!r}")
        decode, call = self._methods[short]

        params = request.get("params")
        if isinstance(params, list):
            params = params[0] if params else {}
        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            return _error(req_id, INVALID_PARAMS, "rpc: invalid params")
        try:
            args = decode(params)
        except (TypeError, ValueError) as exc:
            return _error(req_id, INVALID_PARAMS, f"rpc: invalid params: {exc}")

        try:
            result = call(*args)
        except TokenVMError as exc:
            return _error(req_id, SERVER_ERROR, str(exc))
        return {"jsonrpc": "2.0", "result": result, "id": req_id}

    def __call__(
        self,
        environ: Mapping[str, Any],
        start_response: Callable[..., Any],
    ) -> Iterable[bytes]:
        if environ.get("REQUEST_METHOD") != "POST":
            body = b"rpc: POST method required"
            start_response(
                "405 Method Not Allowed",
                [("Content-Type", "text/plain"), ("Allow", "POST"), ("Content-Length", str(len(body)))],
            )
            return [body]
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        raw = environ["wsgi.input"].read(length) if length > 0 else b""
        try:
            request = json.loads(raw)
        except ValueError:
            response = _error(None, PARSE_ERROR, "rpc: parse error")
        else:
            response = self.handle(request)
        payload = json.dumps(response).encode("utf-8")
        start_response(
            "200 OK",
            [("Content-Type", "application/json; charset=utf-8"), ("Content-Length", str(len(payload)))],
        )
        return [payload]