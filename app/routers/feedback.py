"""
Feedback Router
===============

Intake and read endpoints for customer feedback.

POST /api/feedback accepts a submission (202); analysis runs in the background.
GET /api/feedback lists newest first; GET /api/feedback/{id} returns one item.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from app.core.async_utils import run_sync
from app.models.schemas import FeedbackAccepted, FeedbackCreate
from app.services.feedback_service import FeedbackService, get_feedback_service
from app.services.pipeline_service import FeedbackPipeline, get_feedback_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/feedback", status_code=status.HTTP_202_ACCEPTED, response_model=FeedbackAccepted)
async def submit_feedback(
    body: FeedbackCreate,
    background_tasks: BackgroundTasks,
    service: FeedbackService = Depends(get_feedback_service),
    pipeline: FeedbackPipeline = Depends(get_feedback_pipeline),
):
    """
    Accept a feedback submission.

    The item is stored in PROCESSING state and the analysis pipeline is
    scheduled after the response is sent.
    """
    item = await run_sync(service.submit, body.text, body.source, body.title, body.author)
    background_tasks.add_task(pipeline.process, item.id, item.blob_key)
    return FeedbackAccepted(id=item.id, status=item.status, source=item.source)


@router.get("/feedback")
async def list_feedback(
    limit: int = Query(50, ge=1, le=200, description="Max items"),
    offset: int = Query(0, ge=0, description="Items to skip"),
    service: FeedbackService = Depends(get_feedback_service),
):
    """List feedback, newest first."""
    items = await run_sync(service.list_recent, limit, offset)
    total = await run_sync(service.count)
    return {
        "data": [item.to_dict() for item in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/feedback/{item_id}")
async def get_feedback(
    item_id: str,
    service: FeedbackService = Depends(get_feedback_service),
):
    item = await run_sync(service.get, item_id)
    return item.to_dict()
