"""
Message Endpoints

Producer-facing enqueue API and conversation history.
"""
from fastapi import APIRouter, Depends, Query, status

from outbox.api.dependencies import get_enqueue_service, get_store
from outbox.api.models.messages import MessageView, SendMessageRequest, SendMessageResponse
from outbox.message_queue import OutboxStore
from outbox.services.enqueue import EnqueueService

router = APIRouter(prefix="/messages", tags=["Messages"])

MAX_HISTORY_LIMIT = 500


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=SendMessageResponse,
    response_model_by_alias=True,
)
async def send_message(
    payload: SendMessageRequest,
    enqueue_service: EnqueueService = Depends(get_enqueue_service),
):
    """
    Accept a message for delivery.

    Returns 201 with the new message and queue entry ids, 400 if the
    request is invalid. Delivery happens asynchronously.
    """
    result = await enqueue_service.enqueue(
        destination=payload.destination,
        content=payload.content,
        message_type=payload.message_type,
        priority=payload.priority,
        scheduled_at=payload.scheduled_at,
        media_url=payload.media_url,
    )
    return SendMessageResponse(message_id=result.message_id, queue_id=result.queue_id)


@router.get(
    "/{conversation_id}",
    response_model=list[MessageView],
    response_model_by_alias=True,
)
async def conversation_history(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=MAX_HISTORY_LIMIT),
    store: OutboxStore = Depends(get_store),
):
    """Most recent messages for a destination, oldest first."""
    messages = await store.get_conversation(conversation_id, limit)
    return [MessageView.from_message(m) for m in messages]
