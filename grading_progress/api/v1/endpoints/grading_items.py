# grading_progress/api/v1/endpoints/grading_items.py
from typing import List

from fastapi import APIRouter, Depends

from grading_progress.api.deps import get_grading_state
from grading_progress.core.state import GradingState
from grading_progress.schemas.grading_item import (
    AssessmentStats,
    AssessmentWithSubmissions,
    SourceType,
    UnifiedGradingListResponse,
)
from grading_progress.schemas.score import ScoreAnalytics
from grading_progress.schemas.submission import Submission, SubmissionStatus

router = APIRouter(tags=["grading"])


@router.get("/grading-items", response_model=UnifiedGradingListResponse)
async def list_grading_items(
    skip: int = 0,
    limit: int = 100,
    item_type: SourceType | None = None,
    state: GradingState = Depends(get_grading_state),
):
    """
    Manual assessments and AI exams in one list.
    """
    return await state.load_grading_items(skip=skip, limit=limit, item_type=item_type)


@router.get("/grading-items/{item_id}", response_model=AssessmentWithSubmissions)
async def get_grading_item(
    item_id: int,
    state: GradingState = Depends(get_grading_state),
):
    return await state.load_grading_item(item_id)


@router.get("/grading-items/{item_id}/submissions", response_model=List[Submission])
async def list_grading_item_submissions(
    item_id: int,
    source_type: SourceType = "manual_assessment",
    skip: int = 0,
    limit: int = 100,
    state: GradingState = Depends(get_grading_state),
):
    return await state.load_item_submissions(item_id, source_type, skip=skip, limit=limit)


@router.get("/grading-items/{item_id}/stats", response_model=AssessmentStats)
async def get_grading_item_stats(
    item_id: int,
    source_type: SourceType = "manual_assessment",
    state: GradingState = Depends(get_grading_state),
):
    return await state.load_item_stats(item_id, source_type)


@router.get("/assessments/{assessment_id}", response_model=AssessmentWithSubmissions)
async def get_assessment(
    assessment_id: int,
    state: GradingState = Depends(get_grading_state),
):
    return await state.load_assessment(assessment_id)


@router.get("/assessments/{assessment_id}/analytics", response_model=ScoreAnalytics)
async def get_assessment_analytics(
    assessment_id: int,
    status: SubmissionStatus | None = None,
    student_id: int | None = None,
    state: GradingState = Depends(get_grading_state),
):
    """
    Score statistics and histogram over the assessment's graded submissions.
    """
    return await state.assessment_analytics(assessment_id, status=status, student_id=student_id)
