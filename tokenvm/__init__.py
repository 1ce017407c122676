"""Token ledger state storage, address encoding, and a JSON-RPC query service and client."""

__version__ = "0.0.1"

__all__ = ["encoding", "errors", "rpc_client", "rpc_server", "storage"]