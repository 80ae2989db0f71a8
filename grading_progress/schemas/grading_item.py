# grading_progress/schemas/grading_item.py
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

from grading_progress.schemas.submission import Submission

SourceType = Literal["manual_assessment", "ai_exam"]


class Assessment(BaseModel):
    id: int
    title: str
    description: str | None = None
    answer_key: str | None = None
    max_score: float | None = None
    teacher_id: int | None = None
    status: str = "active"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    total_submissions: int | None = None


class AssessmentWithSubmissions(Assessment):
    submissions: list[Submission] = []


class AssessmentStats(BaseModel):
    assessment_id: int
    total_submissions: int = 0
    completed_submissions: int = 0
    pending_submissions: int = 0
    failed_submissions: int = 0
    average_score: float | None = None
    highest_score: float | None = None
    lowest_score: float | None = None


class UnifiedGradingItem(BaseModel):
    """Manual assessment or AI-generated exam, listed together"""
    id: int
    title: str
    description: str | None = None
    answer_key: dict[str, Any] = {}
    source_type: SourceType
    status: str
    max_score: float | None = None
    total_submissions: int = 0
    teacher_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    metadata: dict[str, Any] | None = None


class UnifiedGradingListResponse(BaseModel):
    items: list[UnifiedGradingItem] = []
    total: int = 0
    manual_assessments_count: int = 0
    ai_exams_count: int = 0
