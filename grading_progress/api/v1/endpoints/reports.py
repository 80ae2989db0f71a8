# grading_progress/api/v1/endpoints/reports.py
from fastapi import APIRouter, Depends

from grading_progress.api.deps import get_grading_state
from grading_progress.core.state import GradingState
from grading_progress.schemas.report import (
    EmailReportRequest,
    EmailReportResponse,
    ReportHistoryResponse,
    ReportRequest,
    ReportResponse,
)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("/generate", response_model=ReportResponse)
async def generate_report(
    obj_in: ReportRequest,
    state: GradingState = Depends(get_grading_state),
):
    return await state.client.generate_report(obj_in)


@router.post("/email", response_model=EmailReportResponse)
async def email_report(
    obj_in: EmailReportRequest,
    state: GradingState = Depends(get_grading_state),
):
    return await state.client.email_report(obj_in)


@router.get("/history", response_model=ReportHistoryResponse)
async def get_report_history(
    page: int = 1,
    page_size: int = 10,
    state: GradingState = Depends(get_grading_state),
):
    return await state.client.get_report_history(page=page, page_size=page_size)
