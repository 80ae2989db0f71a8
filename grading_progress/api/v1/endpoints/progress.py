# grading_progress/api/v1/endpoints/progress.py
from fastapi import APIRouter, Depends, HTTPException, status

from grading_progress.api.deps import get_grading_state
from grading_progress.core.state import GradingState
from grading_progress.schemas.progress import ProgressSnapshot
from grading_progress.schemas.submission import SubmissionIdsIn

router = APIRouter(prefix="/progress", tags=["progress"])


@router.post("/watches", response_model=ProgressSnapshot, status_code=status.HTTP_201_CREATED)
def create_watch(
    obj_in: SubmissionIdsIn,
    state: GradingState = Depends(get_grading_state),
):
    """
    Follow a set of submissions; the watch is recomputed on every status update.
    """
    return state.add_watch(obj_in.submission_ids).snapshot()


@router.get("/watches/{watch_id}", response_model=ProgressSnapshot)
def get_watch(watch_id: str, state: GradingState = Depends(get_grading_state)):
    watch = state.get_watch(watch_id)
    if watch is None:
        raise HTTPException(status_code=404, detail="Progress watch not found")
    return watch.snapshot()


@router.put("/watches/{watch_id}", response_model=ProgressSnapshot)
def update_watch(
    watch_id: str,
    obj_in: SubmissionIdsIn,
    state: GradingState = Depends(get_grading_state),
):
    watch = state.get_watch(watch_id)
    if watch is None:
        raise HTTPException(status_code=404, detail="Progress watch not found")
    watch.set_submission_ids(obj_in.submission_ids)
    return watch.update(state.tracking)


@router.delete("/watches/{watch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_watch(watch_id: str, state: GradingState = Depends(get_grading_state)):
    if not state.remove_watch(watch_id):
        raise HTTPException(status_code=404, detail="Progress watch not found")
