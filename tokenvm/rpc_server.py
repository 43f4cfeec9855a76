"""JSON-RPC service that answers queries about token VM state."""

from __future__ import annotations

import base64
import dataclasses
import hashlib
import json
from collections.abc import Callable, Mapping
from typing import Any, Optional, Protocol, Union

from tokenvm.address import AddressCodec
from tokenvm.errors import AssetNotFoundError, TokenVMError, TxNotFoundError
from tokenvm.storage import ID_LEN, AssetRecord, TransactionRecord

JSONRPC_ENDPOINT = "/tokenapi"
ORDERS_TO_SEND = 128
EMPTY_ID = bytes(ID_LEN)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {c: i for i, c in enumerate(_B58_ALPHABET)}
_CHECKSUM_LEN = 4


def _b58encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    digits: list[str] = []
    while number:
        number, rem = divmod(number, 58)
        digits.append(_B58_ALPHABET[rem])
    pad = len(data) - len(data.lstrip(b"\0"))
    return "1" * pad + "".join(reversed(digits))


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        try:
            number = number * 58 + _B58_INDEX[char]
        except KeyError:
            raise ValueError(f"invalid base58 character {char!r}") from None
    pad = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\0" * pad + body


def _encode_id(value: bytes) -> str:
    """Encode a 32-byte identifier as checksummed base58."""
    if len(value) != ID_LEN:
        raise ValueError(f"id must be {ID_LEN} bytes, got {len(value)}")
    payload = bytes(value)
    return _b58encode(payload + hashlib.sha256(payload).digest()[-_CHECKSUM_LEN:])


def _decode_id(text: Optional[str]) -> bytes:
    """Decode a checksummed base58 identifier; null means the empty id."""
    if text is None:
        return EMPTY_ID
    if not isinstance(text, str):
        raise ValueError("id must be a string")
    raw = _b58decode(text)
    if len(raw) != ID_LEN + _CHECKSUM_LEN:
        raise ValueError(f"id has wrong length {len(raw)}")
    payload, checksum = raw[:ID_LEN], raw[ID_LEN:]
    if hashlib.sha256(payload).digest()[-_CHECKSUM_LEN:] != checksum:
        raise ValueError("invalid id checksum")
    return payload


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


class Controller(Protocol):
    """What the RPC service needs from the running VM."""

    def genesis(self) -> Any: ...

    def get_transaction(self, tx_id: bytes) -> Optional[TransactionRecord]: ...

    def get_asset_from_state(self, asset: bytes) -> Optional[AssetRecord]: ...

    def get_balance_from_state(self, public_key: bytes, asset: bytes) -> int: ...

    def orders(self, pair: str, limit: int) -> list[Any]: ...

    def get_loan_from_state(self, asset: bytes, destination: bytes) -> int: ...


class JSONRPCServer:
    """Answers token VM queries, directly or as JSON-RPC 2.0 requests."""

    def __init__(
        self, controller: Controller, codec: AddressCodec, name: str = "tokenvm"
    ) -> None:
        self.controller = controller
        self.codec = codec
        self.name = name
        self._methods: dict[str, Callable[[Mapping[str, Any]], dict[str, Any]]] = {
            "genesis": lambda p: self.genesis(),
            "tx": lambda p: self.tx(_decode_id(p.get("txId"))),
            "asset": lambda p: self.asset(_decode_id(p.get("asset"))),
            "balance": lambda p: self.balance(
                p.get("address", ""), _decode_id(p.get("asset"))
            ),
            "orders": lambda p: self.orders(p.get("pair", "")),
            "loan": lambda p: self.loan(
                _decode_id(p.get("asset")), _decode_id(p.get("destination"))
            ),
        }

    def genesis(self) -> dict[str, Any]:
        return {"genesis": self.controller.genesis()}

    def tx(self, tx_id: bytes) -> dict[str, Any]:
        record = self.controller.get_transaction(tx_id)
        if record is None:
            raise TxNotFoundError()
        return {
            "timestamp": record.timestamp,
            "success": record.success,
            "units": record.units,
        }

    def asset(self, asset: bytes) -> dict[str, Any]:
        record = self.controller.get_asset_from_state(asset)
        if record is None:
            raise AssetNotFoundError()
        return {
            "metadata": record.metadata,
            "supply": record.supply,
            "owner": self.codec.address(record.owner),
            "warp": record.warp,
        }

    def balance(self, address: str, asset: bytes) -> dict[str, Any]:
        public_key = self.codec.parse_address(address)
        return {"amount": self.controller.get_balance_from_state(public_key, asset)}

    def orders(self, pair: str) -> dict[str, Any]:
        return {"orders": list(self.controller.orders(pair, ORDERS_TO_SEND))}

    def loan(self, asset: bytes, destination: bytes) -> dict[str, Any]:
        return {"amount": self.controller.get_loan_from_state(asset, destination)}

    def handle(self, body: Union[bytes, str]) -> bytes:
        """Serve one JSON-RPC request body and return the response body."""
        try:
            request = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return self._error(None, PARSE_ERROR, "parse error")
        if not isinstance(request, dict):
            return self._error(None, INVALID_REQUEST, "invalid request")
        req_id = request.get("id")
        method_name = request.get("method")
        if not isinstance(method_name, str):
            return self._error(req_id, INVALID_REQUEST, "invalid request")

        service, _, method = method_name.partition(".")
        handler = self._methods.get(method.lower()) if service == self.name else None
        if handler is None:
            return self._error(req_id, METHOD_NOT_FOUND, f"method not found: {method_name}")

        params = request.get("params")
        if isinstance(params, list):
            if len(params) > 1:
                return self._error(req_id, INVALID_PARAMS, "expected a single parameter object")
            params = params[0] if params else None
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return self._error(req_id, INVALID_PARAMS, "parameters must be an object")

        try:
            result = handler(params)
        except TokenVMError as exc:
            return self._error(req_id, SERVER_ERROR, str(exc))
        except ValueError as exc:
            return self._error(req_id, INVALID_PARAMS, str(exc))
        return json.dumps(
            {"jsonrpc": "2.0", "result": result, "id": req_id}, default=_json_default
        ).encode()

    @staticmethod
    def _error(req_id: Any, code: int, message: str) -> bytes:
        return json.dumps(
            {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": req_id}
        ).encode()