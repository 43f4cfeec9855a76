"""Client for the token VM JSON-RPC service."""

from __future__ import annotations

import base64
import itertools
import json
import logging
import time
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from tokenvm.errors import AssetNotFoundError, TokenVMError, TxNotFoundError
from tokenvm.rpc_server import JSONRPC_ENDPOINT, _encode_id

logger = logging.getLogger(__name__)

Transport = Callable[[str, bytes], bytes]


def _http_transport(url: str, body: bytes) -> bytes:
    request = urllib.request.Request(
        url, data=body, headers={"Content-Type": "application/json"}, method="POST"
    )
    with urllib.request.urlopen(request) as response:
        return response.read()


class RPCError(TokenVMError):
    """The service answered a request with an error."""

    message = "rpc error"

    def __init__(self, detail: Optional[str] = None, code: Optional[int] = None) -> None:
        super().__init__(detail)
        self.code = code


@dataclass(frozen=True)
class AssetInfo:
    metadata: bytes
    supply: int
    owner: str
    warp: bool


@dataclass(frozen=True)
class TxStatus:
    success: bool
    timestamp: int


class JSONRPCClient:
    """Queries one chain's token service over JSON-RPC."""

    def __init__(
        self,
        uri: str,
        chain_id: bytes,
        name: str = "tokenvm",
        transport: Optional[Transport] = None,
    ) -> None:
        self.url = uri.removesuffix("/") + JSONRPC_ENDPOINT
        self.chain_id = chain_id
        self.name = name
        self._transport = transport or _http_transport
        self._ids = itertools.count(1)
        self._genesis: Any = None

    def _send(self, method: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        request = {
            "jsonrpc": "2.0",
            "method": f"{self.name}.{method}",
            "params": [params or {}],
            "id": next(self._ids),
        }
        raw = self._transport(self.url, json.dumps(request).encode())
        try:
            response = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as exc:
            raise RPCError(f"malformed response: {exc}") from None
        error = response.get("error")
        if error:
            raise RPCError(error.get("message"), error.get("code"))
        return response.get("result") or {}

    def genesis(self) -> Any:
        """Return the chain genesis, fetched once and then cached."""
        if self._genesis is None:
            self._genesis = self._send("genesis").get("genesis")
        return self._genesis

    def tx(self, tx_id: bytes) -> Optional[TxStatus]:
        """Return a transaction's outcome, or None if it is not known yet."""
        try:
            reply = self._send("tx", {"txId": _encode_id(tx_id)})
        except RPCError as exc:
            if TxNotFoundError.message in str(exc):
                return None
            raise
        return TxStatus(bool(reply.get("success")), int(reply.get("timestamp", 0)))

    def asset(self, asset: bytes) -> Optional[AssetInfo]:
        """Return an asset's details, or None if it does not exist."""
        try:
            reply = self._send("asset", {"asset": _encode_id(asset)})
        except RPCError as exc:
            if AssetNotFoundError.message in str(exc):
                return None
            raise
        return AssetInfo(
            metadata=base64.b64decode(reply.get("metadata") or ""),
            supply=int(reply.get("supply", 0)),
            owner=reply.get("owner", ""),
            warp=bool(reply.get("warp")),
        )

    def balance(self, address: str, asset: bytes) -> int:
        reply = self._send("balance", {"address": address, "asset": _encode_id(asset)})
        return int(reply.get("amount", 0))

    def orders(self, pair: str) -> list[Any]:
        return list(self._send("orders", {"pair": pair}).get("orders") or [])

    def loan(self, asset: bytes, destination: bytes) -> int:
        reply = self._send(
            "loan", {"asset": _encode_id(asset), "destination": _encode_id(destination)}
        )
        return int(reply.get("amount", 0))

    @staticmethod
    def _wait(check: Callable[[], bool], interval: float, timeout: Optional[float]) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not check():
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError("condition not met before timeout")
            time.sleep(interval)

    def wait_for_balance(
        self,
        address: str,
        asset: bytes,
        minimum: int,
        interval: float = 1.0,
        timeout: Optional[float] = None,
    ) -> None:
        """Poll until the balance of address reaches minimum."""

        def reached() -> bool:
            done = self.balance(address, asset) >= minimum
            if not done:
                logger.info("waiting for %d balance: %s", minimum, address)
            return done

        self._wait(reached, interval, timeout)

    def wait_for_transaction(
        self, tx_id: bytes, interval: float = 1.0, timeout: Optional[float] = None
    ) -> bool:
        """Poll until the transaction is known and return whether it succeeded."""
        outcome: list[TxStatus] = []

        def found() -> bool:
            status = self.tx(tx_id)
            if status is None:
                return False
            outcome.append(status)
            return True

        self._wait(found, interval, timeout)
        return outcome[0].success