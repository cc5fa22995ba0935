"""Encrypted message submission, listing and local decryption."""

from cipherwave.messages.models import MessageRecord, SubmissionReceipt
from cipherwave.messages.service import (
    DecryptionUnavailableError,
    MessageError,
    MessageService,
    SubmissionError,
)

__all__ = [
    "DecryptionUnavailableError",
    "MessageError",
    "MessageRecord",
    "MessageService",
    "SubmissionError",
    "SubmissionReceipt",
]
