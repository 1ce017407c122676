"""Key layout and value encoding of the token VM state."""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from tokenvm.encoding import ID_LEN, PUBLIC_KEY_LEN, address, id_to_string
from tokenvm.errors import InvalidBalanceError

# Metadata
#   0x0/ [txID] => timestamp|success|units
# State
#   0x0/ [owner|asset] => balance
#   0x1/ [asset] => metadataLen|metadata|supply|owner|warp
#   0x2/ [txID] => in|inTick|out|outTick|remaining|owner
#   0x3/ [asset|destination] => amount
#   0x4/ height
#   0x5/ incoming warp, 0x6/ outgoing warp

TX_PREFIX = 0x0
BALANCE_PREFIX = 0x0
ASSET_PREFIX = 0x1
ORDER_PREFIX = 0x2
LOAN_PREFIX = 0x3
HEIGHT_PREFIX = 0x4
INCOMING_WARP_PREFIX = 0x5
OUTGOING_WARP_PREFIX = 0x6

MAX_UINT64 = (1 << 64) - 1
MAX_METADATA_LEN = (1 << 16) - 1

_TX_VALUE = struct.Struct(">qBQ")
_U64 = struct.Struct(">Q")
_U16 = struct.Struct(">H")

ReadState = Callable[[Sequence[bytes]], list[Optional[bytes]]]


class _Database(Protocol):
    def get_value(self, key: bytes) -> Optional[bytes]: ...

    def insert(self, key: bytes, value: bytes) -> None: ...

    def remove(self, key: bytes) -> None: ...


class MemoryDatabase:
    """A dictionary-backed key/value store with the state database interface."""

    def __init__(self, items: Iterable[tuple[bytes, bytes]] = ()) -> None:
        self._data: dict[bytes, bytes] = {bytes(k): bytes(v) for k, v in items}

    def get_value(self, key: bytes) -> Optional[bytes]:
        """Return the stored value, or None when the key is absent."""
        return self._data.get(bytes(key))

    def insert(self, key: bytes, value: bytes) -> None:
        self._data[bytes(key)] = bytes(value)

    def remove(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def read_state(self, keys: Sequence[bytes]) -> list[Optional[bytes]]:
        """Look up many keys at once; missing keys yield None."""
        return [self.get_value(key) for key in keys]

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


@dataclass(frozen=True)
class TransactionRecord:
    timestamp: int
    success: bool
    units: int


@dataclass(frozen=True)
class AssetRecord:
    metadata: bytes
    supply: int
    owner: bytes
    warp: bool


@dataclass(frozen=True)
class OrderRecord:
    in_asset: bytes
    in_tick: int
    out_asset: bytes
    out_tick: int
    remaining: int
    owner: bytes


def _fixed(value: bytes, length: int, what: str) -> bytes:
    value = bytes(value)
    if len(value) != length:
        raise ValueError(f"{what} must be {length} bytes, got {len(value)}")
    return value


def _id(value: bytes) -> bytes:
    return _fixed(value, ID_LEN, "identifier")


def _pk(value: bytes) -> bytes:
    return _fixed(value, PUBLIC_KEY_LEN, "public key")


def _u64(value: int, what: str) -> int:
    if not 0 <= value <= MAX_UINT64:
        raise ValueError(f"{what} must fit in an unsigned 64-bit integer")
    return value


def _decode_u64(value: Optional[bytes]) -> int:
    return 0 if value is None else _U64.unpack_from(value)[0]


def prefix_tx_key(tx_id: bytes) -> bytes:
    return bytes([TX_PREFIX]) + _id(tx_id)


def store_transaction(db: _Database, tx_id: bytes, timestamp: int, success: bool, units: int) -> None:
    value = _TX_VALUE.pack(timestamp, 1 if success else 0, _u64(units, "units"))
    db.insert(prefix_tx_key(tx_id), value)


def get_transaction(db: _Database, tx_id: bytes) -> Optional[TransactionRecord]:
    """Return the stored transaction result, or None if it was never stored."""
    value = db.get_value(prefix_tx_key(tx_id))
    if value is None:
        return None
    timestamp, flag, units = _TX_VALUE.unpack_from(value)
    return TransactionRecord(timestamp, flag != 0, units)


def prefix_balance_key(public_key: bytes, asset: bytes) -> bytes:
    return bytes([BALANCE_PREFIX]) + _pk(public_key) + _id(asset)


def get_balance(db: _Database, public_key: bytes, asset: bytes) -> int:
    """Return the balance, zero when the account holds none of the asset."""
    return _decode_u64(db.get_value(prefix_balance_key(public_key, asset)))


def get_balance_from_state(read_state: ReadState, public_key: bytes, asset: bytes) -> int:
    return _decode_u64(read_state([prefix_balance_key(public_key, asset)])[0])


def set_balance(db: _Database, public_key: bytes, asset: bytes, balance: int) -> None:
    db.insert(prefix_balance_key(public_key, asset), _U64.pack(_u64(balance, "balance")))


def delete_balance(db: _Database, public_key: bytes, asset: bytes) -> None:
    db.remove(prefix_balance_key(public_key, asset))


def add_balance(db: _Database, public_key: bytes, asset: bytes, amount: int) -> None:
    key = prefix_balance_key(public_key, asset)
    balance = _decode_u64(db.get_value(key))
    new_balance = balance + amount
    if amount < 0 or new_balance > MAX_UINT64:
        raise InvalidBalanceError(
            f"could not add balance (asset={id_to_string(asset)}, bal={balance}, "
            f"addr={address(public_key)}, amount={amount})"
        )
    db.insert(key, _U64.pack(new_balance))


def sub_balance(db: _Database, public_key: bytes, asset: bytes, amount: int) -> None:
    key = prefix_balance_key(public_key, asset)
    balance = _decode_u64(db.get_value(key))
    if amount < 0 or amount > balance:
        raise InvalidBalanceError(
            f"could not subtract balance (asset={id_to_string(asset)}, bal={balance}, "
            f"addr={address(public_key)}, amount={amount})"
        )
    new_balance = balance - amount
    if new_balance == 0:
        # An empty balance is removed rather than stored as zero.
        db.remove(key)
    else:
        db.insert(key, _U64.pack(new_balance))


def prefix_asset_key(asset: bytes) -> bytes:
    return bytes([ASSET_PREFIX]) + _id(asset)


def _decode_asset(value: Optional[bytes]) -> Optional[AssetRecord]:
    if value is None:
        return None
    (metadata_len,) = _U16.unpack_from(value)
    start = _U16.size
    metadata = bytes(value[start:start + metadata_len])
    offset = start + metadata_len
    (supply,) = _U64.unpack_from(value, offset)
    offset += _U64.size
    owner = bytes(value[offset:offset + PUBLIC_KEY_LEN])
    warp = value[offset + PUBLIC_KEY_LEN] == 0x1
    return AssetRecord(metadata, supply, owner, warp)


def get_asset_from_state(read_state: ReadState, asset: bytes) -> Optional[AssetRecord]:
    return _decode_asset(read_state([prefix_asset_key(asset)])[0])


def get_asset(db: _Database, asset: bytes) -> Optional[AssetRecord]:
    """Return the asset description, or None if the asset does not exist."""
    return _decode_asset(db.get_value(prefix_asset_key(asset)))


def set_asset(
    db: _Database,
    asset: bytes,
    metadata: bytes,
    supply: int,
    owner: bytes,
    warp: bool,
) -> None:
    metadata = bytes(metadata or b"")
    if len(metadata) > MAX_METADATA_LEN:
        raise ValueError(f"metadata must be at most {MAX_METADATA_LEN} bytes")
    value = b"".join(
        (
            _U16.pack(len(metadata)),
            metadata,
            _U64.pack(_u64(supply, "supply")),
            _pk(owner),
            b"\x01" if warp else b"\x00",
        )
    )
    db.insert(prefix_asset_key(asset), value)


def delete_asset(db: _Database, asset: bytes) -> None:
    db.remove(prefix_asset_key(asset))


def prefix_order_key(tx_id: bytes) -> bytes:
    return bytes([ORDER_PREFIX]) + _id(tx_id)


def set_order(
    db: _Database,
    tx_id: bytes,
    in_asset: bytes,
    in_tick: int,
    out_asset: bytes,
    out_tick: int,
    supply: int,
    owner: bytes,
) -> None:
    value = b"".join(
        (
            _id(in_asset),
            _U64.pack(_u64(in_tick, "in tick")),
            _id(out_asset),
            _U64.pack(_u64(out_tick, "out tick")),
            _U64.pack(_u64(supply, "supply")),
            _pk(owner),
        )
    )
    db.insert(prefix_order_key(tx_id), value)


def get_order(db: _Database, order_id: bytes) -> Optional[OrderRecord]:
    """Return the open order, or None if no such order exists."""
    value = db.get_value(prefix_order_key(order_id))
    if value is None:
        return None
    in_asset = bytes(value[:ID_LEN])
    (in_tick,) = _U64.unpack_from(value, ID_LEN)
    out_start = ID_LEN + _U64.size
    out_asset = bytes(value[out_start:out_start + ID_LEN])
    (out_tick,) = _U64.unpack_from(value, out_start + ID_LEN)
    (remaining,) = _U64.unpack_from(value, out_start + ID_LEN + _U64.size)
    owner_start = 2 * ID_LEN + 3 * _U64.size
    owner = bytes(value[owner_start:owner_start + PUBLIC_KEY_LEN])
    return OrderRecord(in_asset, in_tick, out_asset, out_tick, remaining, owner)


def delete_order(db: _Database, order_id: bytes) -> None:
    db.remove(prefix_order_key(order_id))


def prefix_loan_key(asset: bytes, destination: bytes) -> bytes:
    return bytes([LOAN_PREFIX]) + _id(asset) + _id(destination)


def get_loan_from_state(read_state: ReadState, asset: bytes, destination: bytes) -> int:
    return _decode_u64(read_state([prefix_loan_key(asset, destination)])[0])


def get_loan(db: _Database, asset: bytes, destination: bytes) -> int:
    return _decode_u64(db.get_value(prefix_loan_key(asset, destination)))


def set_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    db.insert(prefix_loan_key(asset, destination), _U64.pack(_u64(amount, "loan")))


def add_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    loan = get_loan(db, asset, destination)
    new_loan = loan + amount
    if amount < 0 or new_loan > MAX_UINT64:
        raise InvalidBalanceError(
            f"could not add loan (asset={id_to_string(asset)}, "
            f"destination={id_to_string(destination)}, amount={amount})"
        )
    set_loan(db, asset, destination, new_loan)


def sub_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    loan = get_loan(db, asset, destination)
    if amount < 0 or amount > loan:
        raise InvalidBalanceError(
            f"could not subtract loan (asset={id_to_string(asset)}, "
            f"destination={id_to_string(destination)}, amount={amount})"
        )
    new_loan = loan - amount
    if new_loan == 0:
        db.remove(prefix_loan_key(asset, destination))
    else:
        set_loan(db, asset, destination, new_loan)


def height_key() -> bytes:
    return bytes([HEIGHT_PREFIX])


def incoming_warp_key_prefix(source_chain_id: bytes, msg_id: bytes) -> bytes:
    return bytes([INCOMING_WARP_PREFIX]) + _id(source_chain_id) + _id(msg_id)


def outgoing_warp_key_prefix(tx_id: bytes) -> bytes:
    return bytes([OUTGOING_WARP_PREFIX]) + _id(tx_id)