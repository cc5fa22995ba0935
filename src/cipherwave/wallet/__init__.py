"""Injected wallet connection: transports, JSON-RPC clients and the session manager."""

from cipherwave.wallet.base import (
    EventEmitterTransport,
    ProviderAbsentError,
    RpcError,
    WalletError,
    WalletRequestError,
    WalletSession,
    WalletTransport,
)
from cipherwave.wallet.rpc import JsonRpcClient, RpcClient, TransportRpcClient
from cipherwave.wallet.session import SessionManager
from cipherwave.wallet.transports import JsonRpcWalletTransport

__all__ = [
    "EventEmitterTransport",
    "JsonRpcClient",
    "JsonRpcWalletTransport",
    "ProviderAbsentError",
    "RpcClient",
    "RpcError",
    "SessionManager",
    "TransportRpcClient",
    "WalletError",
    "WalletRequestError",
    "WalletSession",
    "WalletTransport",
]
