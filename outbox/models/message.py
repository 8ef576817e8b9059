import datetime as dt
from enum import StrEnum
from typing import Optional
from pydantic import Field
from outbox.models.base import MongoBaseModel


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"


class MessageDirection(StrEnum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class MessageStatus(StrEnum):
    SCHEDULED = "scheduled"
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


# Message states the processor is allowed to pick up
DELIVERABLE_STATUSES = (MessageStatus.QUEUED, MessageStatus.SCHEDULED)


class Message(MongoBaseModel):
    """
    One outbound communication unit.

    Content is immutable once created; ``status`` is the single source of
    truth for the delivery outcome.
    """
    destination: str = Field(..., description="Phone number or group id; doubles as the conversation id.")
    content: str
    message_type: MessageType = MessageType.TEXT
    direction: MessageDirection = MessageDirection.OUTGOING
    status: MessageStatus = MessageStatus.QUEUED
    media_url: Optional[str] = None
    provider_message_id: Optional[str] = None
    scheduled_at: Optional[dt.datetime] = None
    sent_at: Optional[dt.datetime] = None
    failed_at: Optional[dt.datetime] = None
    error_details: Optional[str] = None
