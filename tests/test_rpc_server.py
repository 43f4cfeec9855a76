import base64
import json

import pytest

from tokenvm.address import AddressCodec
from tokenvm.errors import AddressError, AssetNotFoundError, TxNotFoundError
from tokenvm.rpc_server import EMPTY_ID, ORDERS_TO_SEND, JSONRPCServer
from tokenvm.storage import AssetRecord, TransactionRecord

EMPTY_ID_TEXT = "11111111111111111111111111111111LpoYY"
OWNER = bytes([7]) * 32
ASSET = bytes([3]) * 32
DEST = bytes([4]) * 32


class FakeController:
    def __init__(self):
        self.transactions = {}
        self.assets = {}
        self.balances = {}
        self.loans = {}
        self.order_book = {}
        self.order_limits = []

    def genesis(self):
        return {"hrp": "token"}

    def get_transaction(self, tx_id):
        return self.transactions.get(tx_id)

    def get_asset_from_state(self, asset):
        return self.assets.get(asset)

    def get_balance_from_state(self, public_key, asset):
        return self.balances.get((public_key, asset), 0)

    def orders(self, pair, limit):
        self.order_limits.append(limit)
        return self.order_book.get(pair, [])[:limit]

    def get_loan_from_state(self, asset, destination):
        return self.loans.get((asset, destination), 0)


@pytest.fixture
def codec():
    return AddressCodec("token")


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def server(controller, codec):
    return JSONRPCServer(controller, codec, "tokenvm")


def call(server, method, params=None, req_id=1):
    body = {"jsonrpc": "2.0", "method": method, "id": req_id}
    if params is not None:
        body["params"] = [params]
    return json.loads(server.handle(json.dumps(body).encode()))


def test_genesis_wraps_controller_value(server):
    assert server.genesis() == {"genesis": {"hrp": "token"}}


def test_tx_found(server, controller):
    controller.transactions[ASSET] = TransactionRecord(50, True, 472)
    assert server.tx(ASSET) == {"timestamp": 50, "success": True, "units": 472}


def test_tx_missing_raises(server):
    with pytest.raises(TxNotFoundError):
        server.tx(ASSET)


def test_asset_owner_is_formatted_address(server, controller, codec):
    controller.assets[ASSET] = AssetRecord(b"1", 15, OWNER, False)
    reply = server.asset(ASSET)
    assert reply["owner"] == codec.address(OWNER)
    assert reply["metadata"] == b"1"
    assert reply["supply"] == 15
    assert reply["warp"] is False


def test_asset_missing_raises(server):
    with pytest.raises(AssetNotFoundError):
        server.asset(ASSET)


def test_balance_parses_address(server, controller, codec):
    controller.balances[(OWNER, ASSET)] = 10
    assert server.balance(codec.address(OWNER), ASSET) == {"amount": 10}
    assert server.balance(codec.address(bytes(32)), ASSET) == {"amount": 0}


def test_balance_rejects_bad_address(server):
    with pytest.raises(AddressError):
        server.balance("nonsense", ASSET)


def test_orders_uses_fixed_limit(server, controller):
    controller.order_book["a-b"] = [{"id": "x"}]
    assert server.orders("a-b") == {"orders": [{"id": "x"}]}
    assert controller.order_limits == [ORDERS_TO_SEND]
    assert ORDERS_TO_SEND == 128


def test_loan(server, controller):
    controller.loans[(ASSET, DEST)] = 110
    assert server.loan(ASSET, DEST) == {"amount": 110}
    assert server.loan(DEST, ASSET) == {"amount": 0}


def test_handle_decodes_empty_id(server, controller):
    controller.transactions[EMPTY_ID] = TransactionRecord(9, False, 3)
    response = call(server, "tokenvm.tx", {"txId": EMPTY_ID_TEXT}, req_id=7)
    assert response["id"] == 7
    assert response["result"] == {"timestamp": 9, "success": False, "units": 3}


def test_handle_missing_id_defaults_to_empty(server, controller):
    controller.loans[(EMPTY_ID, EMPTY_ID)] = 5
    response = call(server, "tokenvm.loan", {})
    assert response["result"] == {"amount": 5}


def test_handle_encodes_metadata_as_base64(server, controller):
    controller.assets[EMPTY_ID] = AssetRecord(b"blah", 2, OWNER, True)
    response = call(server, "tokenvm.asset", {"asset": EMPTY_ID_TEXT})
    assert base64.b64decode(response["result"]["metadata"]) == b"blah"
    assert response["result"]["warp"] is True


def test_handle_method_is_case_insensitive(server, controller, codec):
    controller.balances[(OWNER, EMPTY_ID)] = 42
    response = call(
        server, "tokenvm.Balance", {"address": codec.address(OWNER), "asset": EMPTY_ID_TEXT}
    )
    assert response["result"] == {"amount": 42}


def test_handle_not_found_error(server):
    response = call(server, "tokenvm.tx", {"txId": EMPTY_ID_TEXT})
    assert response["error"]["code"] == -32000
    assert "tx not found" in response["error"]["message"]


def test_handle_unknown_method(server):
    assert call(server, "tokenvm.mint", {})["error"]["code"] == -32601
    assert call(server, "other.tx", {})["error"]["code"] == -32601


def test_handle_parse_error(server):
    response = json.loads(server.handle(b"{not json"))
    assert response["error"]["code"] == -32700
    assert response["id"] is None


def test_handle_bad_checksum_is_invalid_params(server):
    response = call(server, "tokenvm.tx", {"txId": EMPTY_ID_TEXT[:-1] + "Z"})
    assert response["error"]["code"] == -32602