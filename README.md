# tokenvm

`tokenvm` handles the state and query side of a token ledger. It has three parts:

* `tokenvm.storage` defines a compact binary key/value layout for ledger state. The state covers account balances per asset, asset definitions, open orders, cross-chain loans and transaction records.
* `tokenvm.rpc_server` is a JSON-RPC 2.0 service that answers queries about that state. It can also run as a WSGI application.
* `tokenvm.rpc_client` is a client for that service.

The package depends only on the standard library.

## Storage layout

Each record is stored under a one-byte prefix. All integers are big-endian.

| Prefix | Key                        | Value                                                          |
|--------|----------------------------|----------------------------------------------------------------|
| `0x0`  | tx id                      | timestamp (int64), success flag (byte), units (uint64)         |
| `0x0`  | public key + asset         | balance (uint64)                                               |
| `0x1`  | asset                      | metadata length (uint16), metadata, supply, owner, warp flag   |
| `0x2`  | order tx id                | in asset, in tick, out asset, out tick, remaining, owner       |
| `0x3`  | asset + destination chain  | loan amount (uint64)                                           |
| `0x4`  | (none)                     | height key                                                     |
| `0x5`  | source chain + message id  | incoming warp key                                              |
| `0x6`  | tx id                      | outgoing warp key                                              |

Identifiers and public keys are 32 bytes each. The key builders raise `ValueError` when given any other length. They are:

* `prefix_tx_key`
* `prefix_balance_key`
* `prefix_asset_key`
* `prefix_order_key`
* `prefix_loan_key`
* `height_key`
* `incoming_warp_key_prefix`
* `outgoing_warp_key_prefix`

The storage functions work with any object that has `get_value(key)`, `insert(key, value)` and `remove(key)`. `get_value` must return `None` for a missing key. `MemoryDatabase` is a dictionary-backed store with this interface:

```python
from tokenvm.storage import (
    MemoryDatabase, set_balance, add_balance, sub_balance, get_balance,
)

db = MemoryDatabase()
owner = bytes(32)
native = bytes(32)

set_balance(db, owner, native, 1_000)
add_balance(db, owner, native, 500)
sub_balance(db, owner, native, 1_500)   # the record is removed at zero
assert get_balance(db, owner, native) == 0
```

* **Missing records.** A missing balance or loan reads as `0`.
* **Out-of-range updates.** `add_balance`, `sub_balance`, `add_loan` and `sub_loan` raise `tokenvm.errors.InvalidBalanceError` when an addition would overflow 64 bits or a subtraction would go below zero. The stored value is left unchanged.
* **Zero after subtraction.** If a subtraction leaves zero, the record is deleted.

Other records:

* **Assets:** `set_asset`, `get_asset` and `delete_asset`. `get_asset` returns an `AssetRecord` (`metadata`, `supply`, `owner`, `warp`), or `None` if the asset does not exist.
* **Orders:** `set_order`, `get_order` and `delete_order`. `get_order` returns an `OrderRecord` (`in_asset`, `in_tick`, `out_asset`, `out_tick`, `remaining`, `owner`), or `None`.
* **Loans:** `set_loan`, `get_loan`, `add_loan` and `sub_loan`.
* **Transactions:** `store_transaction` records one. `get_transaction` returns a `TransactionRecord` (`timestamp`, `success`, `units`), or `None`.

`get_balance_from_state`, `get_asset_from_state` and `get_loan_from_state` read through a batch function instead of a database object. The batch function takes a list of keys and returns a list of values, with `None` for a missing key. `MemoryDatabase.read_state` is one such function.

## Addresses and identifiers

`tokenvm.encoding` provides:

* `address(public_key, hrp="token")` formats a 32-byte public key as a bech32 address.
* `parse_address(text, hrp="token")` decodes an address back into the key. It raises `tokenvm.errors.InvalidAddressError` for a bad checksum, bad characters, mixed case, the wrong prefix or the wrong length.
* `id_to_string(raw_id)` renders a 32-byte identifier as CB58 text: base58 with a four-byte SHA-256 checksum.
* `id_from_string(text)` parses CB58 text back into an identifier. It raises `ValueError` on a bad character, a bad checksum or a bad length.

## JSON-RPC service

`tokenvm.rpc_server.JSONRPCServer(controller, name="tokenvm", hrp="token")` answers queries using a `Controller`. Any object with these methods will do:

* `genesis()`
* `get_transaction(tx_id)`
* `get_asset_from_state(asset)`
* `get_balance_from_state(public_key, asset)`
* `orders(pair, limit)`
* `get_loan_from_state(asset, destination)`

The service methods are `genesis`, `tx`, `asset`, `balance`, `orders` and `loan`. Over JSON-RPC they are called as `<name>.<Method>`, for example `tokenvm.balance` or `tokenvm.Balance`. Their parameters are:

* `tx`: `txId`
* `asset`: `asset`
* `balance`: `address`, `asset`
* `orders`: `pair`. At most 128 orders are returned.
* `loan`: `asset`, `destination`

Identifiers are passed as CB58 strings. Byte fields in replies, such as asset metadata, are base64.

Each service method can also be called directly as a Python method. `handle(request)` takes one decoded request and returns the response object. Errors are reported as follows:

| Condition                                        | Error code | Message          |
|--------------------------------------------------|------------|------------------|
| Malformed request                                | `-32600`   |                  |
| Unknown method                                   | `-32601`   |                  |
| Bad parameters                                   | `-32602`   |                  |
| Unknown transaction                              | `-32000`   | `tx not found`   |
| Unknown asset                                    | `-32000`   | `asset not found`|
| Any other package error, such as a bad address   | `-32000`   |                  |

The server object is a WSGI application, so any WSGI server can host it, for example `wsgiref.simple_server.make_server("", 8000, server)`. It accepts only `POST` and answers other methods with `405`.

## Client

`tokenvm.rpc_client.JSONRPCClient(uri, chain_id, name="tokenvm")` sends requests to `uri` + `/tokenapi`.

```python
from tokenvm.rpc_client import JSONRPCClient

client = JSONRPCClient("http://localhost:9650/ext/bc/mychain", bytes(32))
amount = client.balance("token1...", bytes(32))
```

* `genesis()` caches its result after the first successful call.
* `tx(tx_id)` and `asset(asset)` return `None` when the service reports the record as not found.
* `balance`, `loan` and `orders` return the amount, or the list of orders.
* An error reply or an HTTP error status raises `RPCError`, which carries `message`, `code` and `data`.
* `wait_for_balance(address, asset, minimum, timeout=None)` polls every half second until the balance reaches `minimum`.
* `wait_for_transaction(tx_id, timeout=None)` polls the same way until the transaction is known, then returns whether it succeeded.
* Both waits raise `TimeoutError` once `timeout` seconds have passed.

## What this package does not do

The package only stores, reads and serves ledger state. It does not:

* build, verify or accept blocks;
* define transaction actions such as transfers, minting, orders or warp import/export;
* sign transactions;
* gossip with other nodes;
* maintain an order book;
* provide a command-line tool.

The `Controller` given to the server, and any real database behind the storage functions, must come from elsewhere.