"""Message records returned to callers."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class MessageRecord(BaseModel):
    """An encrypted message stored on-chain."""

    message_id: int = Field(..., description="Contract-assigned message ID")
    sender: str = Field(..., description="Submitting account (checksummed)")
    timestamp: int = Field(default=0, description="Unix seconds; 0 while pending")
    exists: bool = Field(default=True, description="Whether the contract reports the message as stored")
    content: Optional[int] = Field(default=None, description="Plaintext once decrypted")

    @property
    def decrypted(self) -> bool:
        return self.content is not None

    @property
    def submitted_at(self) -> Optional[datetime]:
        if self.timestamp <= 0:
            return None
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


class SubmissionReceipt(BaseModel):
    """Outcome of a confirmed submission."""

    tx_hash: str = Field(..., description="Transaction hash")
    chain_id: int = Field(..., description="Chain the message was submitted on")
    message_id: Optional[int] = Field(default=None, description="ID from the MessageSubmitted log")
    encrypted: bool = Field(..., description="False for plaintext submissions on local chains")
    handles: list[str] = Field(default_factory=list, description="Ciphertext handles sent")
