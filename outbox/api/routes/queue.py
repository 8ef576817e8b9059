"""
Queue Endpoints

Manual batch trigger and queue statistics.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, status

from outbox.api.dependencies import get_processor
from outbox.message_queue import QueueProcessor, QueueStats

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.post("/process", status_code=status.HTTP_202_ACCEPTED)
async def trigger_processing(
    background_tasks: BackgroundTasks,
    processor: QueueProcessor = Depends(get_processor),
):
    """Run one delivery batch in the background."""
    background_tasks.add_task(processor.process_batch)
    return {"accepted": True}


@router.get("/stats", response_model=QueueStats)
async def queue_stats(processor: QueueProcessor = Depends(get_processor)):
    """
    Queue statistics.

    Entry counts per status, pending counts per priority, age of the
    oldest pending entry and the number of stuck processing entries.
    """
    return await processor.get_queue_stats()
