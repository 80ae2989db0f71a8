# grading_progress/api/v1/endpoints/submissions.py
from typing import Dict

from fastapi import APIRouter, Depends, status

from grading_progress.api.deps import get_grading_state
from grading_progress.core.state import GradingState
from grading_progress.schemas.submission import (
    SubmissionIdsIn,
    SubmissionStatusResponse,
    SubmissionTracking,
)

router = APIRouter(prefix="/submissions", tags=["submissions"])


def _polling_state(state: GradingState) -> dict:
    result = state.last_poll_result
    return {
        "is_polling": state.is_polling,
        "last_result": None if result is None else {
            "outcome": result.outcome.value,
            "attempts": result.attempts,
            "pending_ids": result.pending_ids,
        },
    }


@router.get("/tracking", response_model=Dict[int, SubmissionTracking])
def get_tracking(state: GradingState = Depends(get_grading_state)):
    return state.tracking


@router.get("/polling")
def get_polling(state: GradingState = Depends(get_grading_state)):
    return _polling_state(state)


@router.post("/polling", status_code=status.HTTP_202_ACCEPTED)
async def start_polling(
    obj_in: SubmissionIdsIn,
    state: GradingState = Depends(get_grading_state),
):
    """
    Start polling the given submissions in the background; replaces a running session.
    """
    await state.start_polling(obj_in.submission_ids)
    return _polling_state(state)


@router.delete("/polling")
async def stop_polling(state: GradingState = Depends(get_grading_state)):
    await state.stop_polling()
    return _polling_state(state)


@router.post("/refresh", response_model=Dict[int, SubmissionStatusResponse])
async def refresh_submissions(
    obj_in: SubmissionIdsIn,
    state: GradingState = Depends(get_grading_state),
):
    """
    Fetch every given status once. Ids that fail are left out of the answer.
    """
    return await state.refresh_all(obj_in.submission_ids)


@router.get("/{submission_id}/status", response_model=SubmissionStatusResponse)
async def get_submission_status(
    submission_id: int,
    state: GradingState = Depends(get_grading_state),
):
    return await state.fetch_submission_status(submission_id)
