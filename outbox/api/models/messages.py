"""
Pydantic models for the messages API.

Bodies are camelCase on the wire; snake_case input is accepted too.
"""
import datetime as dt
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional

from outbox.models import Message


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendMessageRequest(CamelModel):
    """Outbound message submitted by a producer."""
    destination: str = Field(..., description="Phone number (E.164 or national) or group id")
    content: str = Field(..., description="Message body")
    # Enum membership and range are checked by the enqueue service
    message_type: str = Field("text", description="text, image, document or audio")
    priority: int = Field(2, description="0 (urgent) to 3 (low)")
    scheduled_at: Optional[dt.datetime] = Field(None, description="Earliest send time; naive values are UTC")
    media_url: Optional[str] = None


class SendMessageResponse(CamelModel):
    message_id: str
    queue_id: str


class MessageView(CamelModel):
    """Message as returned by the conversation history endpoint."""
    id: str
    destination: str
    content: str
    message_type: str
    direction: str
    status: str
    media_url: Optional[str] = None
    provider_message_id: Optional[str] = None
    scheduled_at: Optional[dt.datetime] = None
    sent_at: Optional[dt.datetime] = None
    failed_at: Optional[dt.datetime] = None
    error_details: Optional[str] = None
    created_at: dt.datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageView":
        return cls(**message.model_dump(mode="json", exclude={"updated_at"}))
