import pytest

from tokenvm.address import AddressCodec
from tokenvm.rpc_client import AssetInfo, JSONRPCClient, RPCError, TxStatus
from tokenvm.rpc_server import JSONRPCServer
from tokenvm.storage import AssetRecord, TransactionRecord

OWNER = bytes([7]) * 32
ASSET = bytes([3]) * 32
DEST = bytes([4]) * 32
CHAIN = bytes([9]) * 32
CODEC = AddressCodec("token")


class FakeController:
    def __init__(self):
        self.transactions = {}
        self.assets = {}
        self.balances = {}
        self.loans = {}
        self.order_book = {}
        self.genesis_calls = 0
        self.tx_queries = 0
        self.balance_step = 0

    def genesis(self):
        self.genesis_calls += 1
        return {"hrp": "token"}

    def get_transaction(self, tx_id):
        self.tx_queries += 1
        return self.transactions.get(tx_id)

    def get_asset_from_state(self, asset):
        return self.assets.get(asset)

    def get_balance_from_state(self, public_key, asset):
        key = (public_key, asset)
        value = self.balances.get(key, 0)
        self.balances[key] = value + self.balance_step
        return value

    def orders(self, pair, limit):
        return self.order_book.get(pair, [])[:limit]

    def get_loan_from_state(self, asset, destination):
        return self.loans.get((asset, destination), 0)


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def urls():
    return []


@pytest.fixture
def client(controller, urls):
    server = JSONRPCServer(controller, CODEC, "tokenvm")

    def transport(url, body):
        urls.append(url)
        return server.handle(body)

    return JSONRPCClient("http://node.example.com/ext/bc/A/", CHAIN, "tokenvm", transport)


def test_endpoint_appended_after_trailing_slash(client, urls):
    client.balance(CODEC.address(OWNER), ASSET)
    assert urls == ["http://node.example.com/ext/bc/A/tokenapi"]
    assert client.chain_id == CHAIN


def test_genesis_is_cached(client, controller):
    first = client.genesis()
    second = client.genesis()
    assert first == second == {"hrp": "token"}
    assert controller.genesis_calls == 1


def test_tx_found_and_missing(client, controller):
    assert client.tx(ASSET) is None
    controller.transactions[ASSET] = TransactionRecord(77, True, 472)
    assert client.tx(ASSET) == TxStatus(success=True, timestamp=77)


def test_asset_round_trip(client, controller):
    assert client.asset(ASSET) is None
    controller.assets[ASSET] = AssetRecord(b"blah", 10, OWNER, True)
    assert client.asset(ASSET) == AssetInfo(b"blah", 10, CODEC.address(OWNER), True)


def test_asset_with_empty_metadata(client, controller):
    controller.assets[ASSET] = AssetRecord(b"", 0, OWNER, False)
    assert client.asset(ASSET).metadata == b""


def test_balance_and_loan(client, controller):
    controller.balances[(OWNER, ASSET)] = 15
    controller.loans[(ASSET, DEST)] = 2900
    assert client.balance(CODEC.address(OWNER), ASSET) == 15
    assert client.loan(ASSET, DEST) == 2900
    assert client.loan(DEST, ASSET) == 0


def test_orders(client, controller):
    controller.order_book["p"] = [{"remaining": 4}]
    assert client.orders("p") == [{"remaining": 4}]
    assert client.orders("q") == []


def test_other_errors_propagate(client):
    with pytest.raises(RPCError) as info:
        client.balance("nonsense", ASSET)
    assert info.value.code == -32000
    assert "invalid address" in str(info.value)


def test_wait_for_balance_polls_until_reached(client, controller):
    controller.balance_step = 5
    client.wait_for_balance(CODEC.address(OWNER), ASSET, 10, interval=0)
    assert controller.balances[(OWNER, ASSET)] == 15


def test_wait_for_balance_times_out(client):
    with pytest.raises(TimeoutError):
        client.wait_for_balance(CODEC.address(OWNER), ASSET, 1, interval=0, timeout=0)


def test_wait_for_transaction_returns_outcome(client, controller):
    original = controller.get_transaction

    def delayed(tx_id):
        result = original(tx_id)
        if controller.tx_queries >= 2:
            controller.transactions[tx_id] = TransactionRecord(1, False, 0)
        return result

    controller.get_transaction = delayed
    assert client.wait_for_transaction(ASSET, interval=0) is False
    assert controller.tx_queries == 3


def test_wait_for_transaction_times_out(client):
    with pytest.raises(TimeoutError):
        client.wait_for_transaction(ASSET, interval=0, timeout=0)