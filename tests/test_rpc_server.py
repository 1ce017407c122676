import base64
import io
import json
from dataclasses import dataclass

import pytest

from tokenvm import storage
from tokenvm.encoding import address, id_to_string
from tokenvm.errors import AssetNotFoundError, InvalidAddressError, TxNotFoundError
from tokenvm.rpc_server import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    ORDERS_TO_SEND,
    PARSE_ERROR,
    SERVER_ERROR,
    JSONRPCServer,
)

OWNER = bytes(range(32))
ASSET = b"\x07" * 32
TX_ID = b"\x09" * 32
DEST = b"\x0b" * 32


@dataclass
class Order:
    id: str
    remaining: int


class FakeController:
    def __init__(self):
        self.db = storage.MemoryDatabase()
        self.order_requests = []
        self.book = {}

    def genesis(self):
        return {"hrp": "token", "customAllocation": []}

    def get_transaction(self, tx_id):
        return storage.get_transaction(self.db, tx_id)

    def get_asset_from_state(self, asset):
        return storage.get_asset_from_state(self.db.read_state, asset)

    def get_balance_from_state(self, public_key, asset):
        return storage.get_balance_from_state(self.db.read_state, public_key, asset)

    def orders(self, pair, limit):
        self.order_requests.append((pair, limit))
        return self.book.get(pair, [])[:limit]

    def get_loan_from_state(self, asset, destination):
        return storage.get_loan_from_state(self.db.read_state, asset, destination)


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def server(controller):
    return JSONRPCServer(controller)


def test_genesis_returns_controller_genesis(server, controller):
    assert server.genesis() == {"genesis": controller.genesis()}


def test_tx_found(server, controller):
    storage.store_transaction(controller.db, TX_ID, 1234, True, 472)
    assert server.tx(TX_ID) == {"timestamp": 1234, "success": True, "units": 472}


def test_tx_missing(server):
    with pytest.raises(TxNotFoundError):
        server.tx(TX_ID)


def test_asset_found(server, controller):
    storage.set_asset(controller.db, ASSET, b"1", 15, OWNER, False)
    reply = server.asset(ASSET)
    assert base64.b64decode(reply["metadata"]) == b"1"
    assert reply["supply"] == 15
    assert reply["owner"] == address(OWNER)
    assert reply["warp"] is False


def test_asset_missing(server):
    with pytest.raises(AssetNotFoundError):
        server.asset(ASSET)


def test_balance(server, controller):
    storage.set_balance(controller.db, OWNER, ASSET, 100000)
    assert server.balance(address(OWNER), ASSET) == {"amount": 100000}
    assert server.balance(address(OWNER), DEST) == {"amount": 0}


def test_balance_invalid_address(server):
    with pytest.raises(InvalidAddressError):
        server.balance("not-an-address", ASSET)


def test_orders_uses_limit(server, controller):
    controller.book["a-b"] = [Order("x", 4)]
    assert server.orders("a-b") == {"orders": [{"id": "x", "remaining": 4}]}
    assert controller.order_requests == [("a-b", ORDERS_TO_SEND)]
    assert ORDERS_TO_SEND == 128


def test_orders_empty(server):
    assert server.orders("none") == {"orders": []}


def test_loan(server, controller):
    storage.set_loan(controller.db, ASSET, DEST, 110)
    assert server.loan(ASSET, DEST) == {"amount": 110}


def _request(method, params=None, req_id=1):
    return {"jsonrpc": "2.0", "method": method, "params": params, "id": req_id}


def test_handle_balance(server, controller):
    storage.set_balance(controller.db, OWNER, ASSET, 5000)
    response = server.handle(
        _request("tokenvm.balance", {"address": address(OWNER), "asset": id_to_string(ASSET)}, 7)
    )
    assert response == {"jsonrpc": "2.0", "result": {"amount": 5000}, "id": 7}


def test_handle_params_as_list(server, controller):
    storage.set_loan(controller.db, ASSET, DEST, 9)
    params = [{"asset": id_to_string(ASSET), "destination": id_to_string(DEST)}]
    response = server.handle(_request("tokenvm.loan", params))
    assert response["result"] == {"amount": 9}


def test_handle_capitalised_method(server, controller):
    response = server.handle(_request("tokenvm.Genesis"))
    assert response["result"] == {"genesis": controller.genesis()}


def test_handle_tx_not_found(server):
    response = server.handle(_request("tokenvm.tx", {"txId": id_to_string(TX_ID)}))
    assert response["error"]["code"] == SERVER_ERROR
    assert response["error"]["message"] == "tx not found"


def test_handle_unknown_method(server):
    response = server.handle(_request("tokenvm.nope"))
    assert response["error"]["code"] == METHOD_NOT_FOUND
    other = server.handle(_request("othervm.balance"))
    assert other["error"]["code"] == METHOD_NOT_FOUND


def test_handle_bad_id_is_invalid_params(server):
    response = server.handle(_request("tokenvm.asset", {"asset": "zzz"}))
    assert response["error"]["code"] == INVALID_PARAMS


def test_handle_invalid_request(server):
    assert server.handle([1, 2])["error"]["code"] == INVALID_REQUEST
    bad_version = {"jsonrpc": "1.0", "method": "tokenvm.genesis", "id": 3}
    response = server.handle(bad_version)
    assert response["error"]["code"] == INVALID_REQUEST
    assert response["id"] == 3


def _environ(method, body=b""):
    return {
        "REQUEST_METHOD": method,
        "CONTENT_LENGTH": str(len(body)),
        "wsgi.input": io.BytesIO(body),
    }


def test_wsgi_post(server, controller):
    storage.set_loan(controller.db, ASSET, DEST, 42)
    statuses = []
    body = json.dumps(
        _request("tokenvm.loan", {"asset": id_to_string(ASSET), "destination": id_to_string(DEST)})
    ).encode()
    chunks = server(_environ("POST", body), lambda status, headers: statuses.append(status))
    assert statuses == ["200 OK"]
    assert json.loads(b"".join(chunks))["result"] == {"amount": 42}


def test_wsgi_rejects_get(server):
    statuses = []
    server(_environ("GET"), lambda status, headers: statuses.append(status))
    assert statuses[0].startswith("405")


def test_wsgi_parse_error(server):
    chunks = server(_environ("POST", b"{not json"), lambda status, headers: None)
    assert json.loads(b"".join(chunks))["error"]["code"] == PARSE_ERROR