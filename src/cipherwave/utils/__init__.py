"""Utility modules for CipherWave."""

from cipherwave.utils.cancellation import CancellationToken, OperationCancelledError
from cipherwave.utils.observable import Observable, Subscription

__all__ = [
    "CancellationToken",
    "OperationCancelledError",
    "Observable",
    "Subscription",
]
