# tokenvm

A small library for keeping the state of a token ledger in a key-value
store and answering queries about it over JSON-RPC. It has no third-party
dependencies and needs Python 3.10 or later.

- `tokenvm.storage`: prefixed keys and fixed binary encodings for
  transaction results, balances, assets, orders, loans and warp messages,
  with helpers that read, write, add to and subtract from them, plus an
  in-memory `MemoryDatabase`.
- `tokenvm.address`: `AddressCodec` turns a 32-byte public key into a
  bech32 address under a chosen human-readable part and parses it back.
- `tokenvm.rpc_server`: `JSONRPCServer`, which answers `genesis`, `tx`,
  `asset`, `balance`, `orders` and `loan` queries from a `Controller`.
- `tokenvm.rpc_client`: `JSONRPCClient`, which calls those methods and can
  wait for a balance or a transaction.
- `tokenvm.errors`: every error derives from `TokenVMError`;
  `TxNotFoundError`, `AssetNotFoundError`, `InvalidBalanceError` and
  `AddressError` name the specific cases.

## Installation

```
pip install .
```

## Keeping balances

Identifiers and public keys are 32-byte values; amounts are unsigned
64-bit integers.

```python
from tokenvm.errors import InvalidBalanceError
from tokenvm.storage import MemoryDatabase, add_balance, get_balance, sub_balance

db = MemoryDatabase()
owner = bytes(32)
asset = bytes(32)

add_balance(db, owner, asset, 100)
sub_balance(db, owner, asset, 40)
print(get_balance(db, owner, asset))  # 60

try:
    sub_balance(db, owner, asset, 1_000)
except InvalidBalanceError as exc:
    print(exc)
```

A balance or loan that drops to zero is removed from the store rather than
kept as a zero value, and a missing record reads back as zero. An addition
that would overflow 64 bits, or a subtraction below zero, raises
`InvalidBalanceError`. Keys and values of the wrong length raise
`ValueError`.

Other records work the same way:

- `store_transaction` / `get_transaction` (a `TransactionRecord` or `None`)
- `set_asset` / `get_asset` / `delete_asset` (an `AssetRecord` or `None`)
- `set_order` / `get_order` / `delete_order` (an `OrderRecord` or `None`)
- `set_loan` / `add_loan` / `sub_loan` / `get_loan`

`get_balance_from_state`, `get_asset_from_state` and `get_loan_from_state`
read through any callable that takes a list of keys and returns a value or
`None` for each, such as `MemoryDatabase.read_state`. `height_key`,
`incoming_warp_key_prefix` and `outgoing_warp_key_prefix` give the keys
used for the block height and warp messages.

Any object with `get_value` (raising `NotFoundError` when a key is
missing), `insert` and `remove` can stand in for `MemoryDatabase`.

## Addresses

```python
from tokenvm.address import AddressCodec

codec = AddressCodec("token")
text = codec.address(bytes(32))
assert codec.parse_address(text) == bytes(32)
```

A malformed address, a bad checksum or a different human-readable part
raises `AddressError`.

## JSON-RPC

`JSONRPCServer(controller, codec, name="tokenvm")` wraps a `Controller`
that supplies the genesis, transaction results, assets, balances, orders
and loans. Its `genesis`, `tx`, `asset`, `balance`, `orders` and `loan`
methods can be called directly; `handle(body)` takes a JSON-RPC 2.0
request body for a method such as `tokenvm.balance` and returns the
response body as bytes. Identifiers travel as checksummed base58 strings
and asset metadata as base64. An unknown transaction or asset, a bad
address or bad parameters come back as JSON-RPC error objects. At most
128 orders are returned for a pair.

`JSONRPCClient(uri, chain_id, name="tokenvm", transport=None)` sends
requests to `uri` + `/tokenapi`. By default it posts over HTTP with
`urllib`; `transport` may be any callable taking the URL and request bytes
and returning the response bytes, for instance one that calls
`JSONRPCServer.handle`. The genesis is fetched once and cached. `tx`
returns a `TxStatus` and `asset` an `AssetInfo`, or `None` when the service
reports them not found; other errors raise `RPCError`.
`wait_for_balance` and `wait_for_transaction` poll every `interval`
seconds (1.0 by default) and raise `TimeoutError` if `timeout` passes
first; with no timeout they wait indefinitely.

## What it does not do

The package holds no running ledger: it does not build, sign or execute
transactions, keep an order book or a genesis of its own, or persist state
to disk (`MemoryDatabase` lives in memory only). It also does not start an
HTTP server; `JSONRPCServer.handle` has to be wired into one by the caller.

## Running the tests

```
pip install .[test]
pytest
```