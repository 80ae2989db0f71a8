# grading_progress/api/v1/endpoints/errors.py
from fastapi import APIRouter, Depends, status

from grading_progress.api.deps import get_grading_state
from grading_progress.core.state import GradingState

router = APIRouter(prefix="/errors", tags=["errors"])


def _errors(state: GradingState) -> dict:
    return {"error": state.error, "upload_error": state.upload_error}


@router.get("")
def get_errors(state: GradingState = Depends(get_grading_state)):
    """
    Last failure messages of grading actions and of batch uploads.
    """
    return _errors(state)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_errors(state: GradingState = Depends(get_grading_state)):
    state.clear_error()
    state.clear_upload_error()
