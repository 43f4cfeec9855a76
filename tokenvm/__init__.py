"""Token ledger state storage, bech32 addresses and a JSON-RPC query service and client."""

__version__ = "0.0.1"

__all__ = ["address", "errors", "rpc_client", "rpc_server", "storage"]