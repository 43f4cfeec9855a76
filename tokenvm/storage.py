"""Key layout and record encoding for the token VM state database.

State keys:
  0x0 | owner | asset        -> balance
  0x1 | asset                -> metadata length | metadata | supply | owner | warp
  0x2 | txID                 -> in | inTick | out | outTick | remaining | owner
  0x3 | asset | destination  -> loan amount
  0x4                        -> height
  0x5 | sourceChain | msgID  -> incoming warp
  0x6 | txID                 -> outgoing warp
Metadata keys:
  0x0 | txID                 -> timestamp | success | units
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from tokenvm.errors import InvalidBalanceError, TokenVMError

ID_LEN = 32
PUBLIC_KEY_LEN = 32
UINT64_LEN = 8
UINT16_LEN = 2
MAX_UINT64 = (1 << 64) - 1
MAX_UINT16 = (1 << 16) - 1

_TX_PREFIX = 0x0
_BALANCE_PREFIX = 0x0
_ASSET_PREFIX = 0x1
_ORDER_PREFIX = 0x2
_LOAN_PREFIX = 0x3
_HEIGHT_PREFIX = 0x4
_INCOMING_WARP_PREFIX = 0x5
_OUTGOING_WARP_PREFIX = 0x6

_FAILURE_BYTE = 0x0
_SUCCESS_BYTE = 0x1

_HEIGHT_KEY = bytes([_HEIGHT_PREFIX])

ReadState = Callable[[Sequence[bytes]], Sequence[Optional[bytes]]]


class NotFoundError(TokenVMError, LookupError):
    """The key is not present in the database."""

    message = "not found"


class _Database(Protocol):
    def get_value(self, key: bytes) -> bytes: ...

    def insert(self, key: bytes, value: bytes) -> None: ...

    def remove(self, key: bytes) -> None: ...


class MemoryDatabase:
    """An in-memory key/value store with the state database interface."""

    def __init__(self) -> None:
        self._data: dict[bytes, bytes] = {}

    def get_value(self, key: bytes) -> bytes:
        """Return the value at key or raise NotFoundError."""
        try:
            return self._data[bytes(key)]
        except KeyError:
            raise NotFoundError(key.hex()) from None

    def insert(self, key: bytes, value: bytes) -> None:
        self._data[bytes(key)] = bytes(value)

    def remove(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def read_state(self, keys: Sequence[bytes]) -> list[Optional[bytes]]:
        """Return the value of each key, None where a key is missing."""
        return [self._data.get(bytes(k)) for k in keys]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


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


def _check_len(value: bytes, length: int, what: str) -> bytes:
    if len(value) != length:
        raise ValueError(f"{what} must be {length} bytes, got {len(value)}")
    return bytes(value)


def _id(value: bytes, what: str = "id") -> bytes:
    return _check_len(value, ID_LEN, what)


def _pk(value: bytes) -> bytes:
    return _check_len(value, PUBLIC_KEY_LEN, "public key")


def _u64(value: int) -> bytes:
    if not 0 <= value <= MAX_UINT64:
        raise ValueError(f"{value} does not fit in an unsigned 64-bit integer")
    return struct.pack(">Q", value)


def _read_u64(data: bytes, offset: int = 0) -> int:
    return struct.unpack_from(">Q", data, offset)[0]


def _get_or_none(db: _Database, key: bytes) -> Optional[bytes]:
    try:
        return db.get_value(key)
    except NotFoundError:
        return None


# Transactions


def prefix_tx_key(tx_id: bytes) -> bytes:
    return bytes([_TX_PREFIX]) + _id(tx_id, "tx id")


def store_transaction(
    db: _Database, tx_id: bytes, timestamp: int, success: bool, units: int
) -> None:
    """Record the outcome of a transaction."""
    if not -(1 << 63) <= timestamp < (1 << 63):
        raise ValueError(f"timestamp {timestamp} does not fit in a signed 64-bit integer")
    value = (
        struct.pack(">q", timestamp)
        + bytes([_SUCCESS_BYTE if success else _FAILURE_BYTE])
        + _u64(units)
    )
    db.insert(prefix_tx_key(tx_id), value)


def get_transaction(db: _Database, tx_id: bytes) -> Optional[TransactionRecord]:
    """Return the stored outcome of a transaction, or None if unknown."""
    value = _get_or_none(db, prefix_tx_key(tx_id))
    if value is None:
        return None
    timestamp = struct.unpack_from(">q", value, 0)[0]
    success = value[UINT64_LEN] != _FAILURE_BYTE
    units = _read_u64(value, UINT64_LEN + 1)
    return TransactionRecord(timestamp, success, units)


# Balances


def prefix_balance_key(public_key: bytes, asset: bytes) -> bytes:
    return bytes([_BALANCE_PREFIX]) + _pk(public_key) + _id(asset, "asset")


def _decode_amount(value: Optional[bytes]) -> int:
    return 0 if value is None else _read_u64(value)


def get_balance(db: _Database, public_key: bytes, asset: bytes) -> int:
    """Return a balance; a missing account has balance 0."""
    return _decode_amount(_get_or_none(db, prefix_balance_key(public_key, asset)))


def get_balance_from_state(read_state: ReadState, public_key: bytes, asset: bytes) -> int:
    """Return a balance through a batch state reader."""
    (value,) = read_state([prefix_balance_key(public_key, asset)])
    return _decode_amount(value)


def set_balance(db: _Database, public_key: bytes, asset: bytes, balance: int) -> None:
    db.insert(prefix_balance_key(public_key, asset), _u64(balance))


def delete_balance(db: _Database, public_key: bytes, asset: bytes) -> None:
    db.remove(prefix_balance_key(public_key, asset))


def add_balance(db: _Database, public_key: bytes, asset: bytes, amount: int) -> None:
    """Increase a balance, raising InvalidBalanceError on overflow."""
    key = prefix_balance_key(public_key, asset)
    balance = _decode_amount(_get_or_none(db, key))
    new_balance = balance + amount
    if new_balance > MAX_UINT64:
        raise InvalidBalanceError(
            f"could not add balance (asset={asset.hex()}, bal={balance}, "
            f"addr={public_key.hex()}, amount={amount})"
        )
    db.insert(key, _u64(new_balance))


def sub_balance(db: _Database, public_key: bytes, asset: bytes, amount: int) -> None:
    """Decrease a balance, removing the record when it reaches zero."""
    key = prefix_balance_key(public_key, asset)
    balance = _decode_amount(_get_or_none(db, key))
    if amount > balance:
        raise InvalidBalanceError(
            f"could not subtract balance (asset={asset.hex()}, bal={balance}, "
            f"addr={public_key.hex()}, amount={amount})"
        )
    new_balance = balance - amount
    if new_balance == 0:
        db.remove(key)
    else:
        db.insert(key, _u64(new_balance))


# Assets


def prefix_asset_key(asset: bytes) -> bytes:
    return bytes([_ASSET_PREFIX]) + _id(asset, "asset")


def _decode_asset(value: Optional[bytes]) -> Optional[AssetRecord]:
    if value is None:
        return None
    metadata_len = struct.unpack_from(">H", value, 0)[0]
    offset = UINT16_LEN
    metadata = value[offset : offset + metadata_len]
    offset += metadata_len
    supply = _read_u64(value, offset)
    offset += UINT64_LEN
    owner = value[offset : offset + PUBLIC_KEY_LEN]
    offset += PUBLIC_KEY_LEN
    warp = value[offset] == 0x1
    return AssetRecord(bytes(metadata), supply, bytes(owner), warp)


def get_asset_from_state(read_state: ReadState, asset: bytes) -> Optional[AssetRecord]:
    """Return an asset through a batch state reader, or None if missing."""
    (value,) = read_state([prefix_asset_key(asset)])
    return _decode_asset(value)


def get_asset(db: _Database, asset: bytes) -> Optional[AssetRecord]:
    """Return an asset, or None if it does not exist."""
    return _decode_asset(_get_or_none(db, prefix_asset_key(asset)))


def set_asset(
    db: _Database,
    asset: bytes,
    metadata: bytes,
    supply: int,
    owner: bytes,
    warp: bool,
) -> None:
    if len(metadata) > MAX_UINT16:
        raise ValueError(f"metadata of {len(metadata)} bytes is too long")
    value = (
        struct.pack(">H", len(metadata))
        + bytes(metadata)
        + _u64(supply)
        + _pk(owner)
        + bytes([0x1 if warp else 0x0])
    )
    db.insert(prefix_asset_key(asset), value)


def delete_asset(db: _Database, asset: bytes) -> None:
    db.remove(prefix_asset_key(asset))


# Orders


def prefix_order_key(tx_id: bytes) -> bytes:
    return bytes([_ORDER_PREFIX]) + _id(tx_id, "order id")


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
    value = (
        _id(in_asset, "in asset")
        + _u64(in_tick)
        + _id(out_asset, "out asset")
        + _u64(out_tick)
        + _u64(supply)
        + _pk(owner)
    )
    db.insert(prefix_order_key(tx_id), value)


def get_order(db: _Database, order: bytes) -> Optional[OrderRecord]:
    """Return an open order, or None if it does not exist."""
    value = _get_or_none(db, prefix_order_key(order))
    if value is None:
        return None
    in_asset = value[:ID_LEN]
    in_tick = _read_u64(value, ID_LEN)
    out_start = ID_LEN + UINT64_LEN
    out_asset = value[out_start : out_start + ID_LEN]
    out_tick = _read_u64(value, ID_LEN * 2 + UINT64_LEN)
    remaining = _read_u64(value, ID_LEN * 2 + UINT64_LEN * 2)
    owner_start = ID_LEN * 2 + UINT64_LEN * 3
    owner = value[owner_start : owner_start + PUBLIC_KEY_LEN]
    return OrderRecord(
        bytes(in_asset), in_tick, bytes(out_asset), out_tick, remaining, bytes(owner)
    )


def delete_order(db: _Database, order: bytes) -> None:
    db.remove(prefix_order_key(order))


# Loans


def prefix_loan_key(asset: bytes, destination: bytes) -> bytes:
    return bytes([_LOAN_PREFIX]) + _id(asset, "asset") + _id(destination, "destination")


def get_loan_from_state(read_state: ReadState, asset: bytes, destination: bytes) -> int:
    """Return a loan amount through a batch state reader; missing is 0."""
    (value,) = read_state([prefix_loan_key(asset, destination)])
    return _decode_amount(value)


def get_loan(db: _Database, asset: bytes, destination: bytes) -> int:
    """Return the amount loaned to a destination chain; missing is 0."""
    return _decode_amount(_get_or_none(db, prefix_loan_key(asset, destination)))


def set_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    db.insert(prefix_loan_key(asset, destination), _u64(amount))


def add_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    """Increase a loan, raising InvalidBalanceError on overflow."""
    loan = get_loan(db, asset, destination)
    if loan + amount > MAX_UINT64:
        raise InvalidBalanceError(
            f"could not add loan (asset={asset.hex()}, "
            f"destination={destination.hex()}, amount={amount})"
        )
    set_loan(db, asset, destination, loan + amount)


def sub_loan(db: _Database, asset: bytes, destination: bytes, amount: int) -> None:
    """Decrease a loan, removing the record when it reaches zero."""
    loan = get_loan(db, asset, destination)
    if amount > loan:
        raise InvalidBalanceError(
            f"could not subtract loan (asset={asset.hex()}, "
            f"destination={destination.hex()}, amount={amount})"
        )
    remaining = loan - amount
    if remaining == 0:
        db.remove(prefix_loan_key(asset, destination))
    else:
        set_loan(db, asset, destination, remaining)


# Other keys


def height_key() -> bytes:
    return _HEIGHT_KEY


def incoming_warp_key_prefix(source_chain_id: bytes, msg_id: bytes) -> bytes:
    return (
        bytes([_INCOMING_WARP_PREFIX])
        + _id(source_chain_id, "source chain id")
        + _id(msg_id, "message id")
    )


def outgoing_warp_key_prefix(tx_id: bytes) -> bytes:
    return bytes([_OUTGOING_WARP_PREFIX]) + _id(tx_id, "tx id")