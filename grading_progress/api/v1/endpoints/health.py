# grading_progress/api/v1/endpoints/health.py
from fastapi import APIRouter, Depends

from grading_progress.api.deps import get_grading_state
from grading_progress.core.state import GradingState

router = APIRouter(tags=["health"])


@router.get("/live")
def liveness_probe():
    return {"status": "ok"}


@router.get("/upstream")
async def upstream_health(state: GradingState = Depends(get_grading_state)):
    # smallest possible listing; errors surface through the app's exception handlers
    listing = await state.client.get_grading_items(skip=0, limit=1)
    return {"status": "ok", "grading_items": listing.total}
