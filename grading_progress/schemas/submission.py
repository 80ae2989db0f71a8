# grading_progress/schemas/submission.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

SubmissionStatus = Literal["pending", "processing", "completed", "failed"]

TERMINAL_STATUSES = frozenset({"completed", "failed"})


class QuestionScore(BaseModel):
    question_number: int
    score: float
    max_score: float
    feedback: str | None = None


class GradingResult(BaseModel):
    """Score and feedback computed by the backend once grading finishes."""
    id: int | None = None
    submission_id: int | None = None
    total_score: float
    max_score: float
    # may be missing or NaN on partially graded results
    percentage: float | None = None
    feedback: str | None = None
    question_scores: list[QuestionScore] = []
    graded_at: datetime | None = None


class _GradedStatusMixin(BaseModel):
    status: SubmissionStatus
    grading_result: GradingResult | None = None

    @model_validator(mode="after")
    def _failed_has_no_result(self):
        if self.status == "failed" and self.grading_result is not None:
            raise ValueError("a failed submission cannot carry a grading result")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class SubmissionStatusResponse(_GradedStatusMixin):
    """Answer of GET /grading/submissions/{id}/status"""
    submission_id: int
    ocr_text: str | None = None
    ocr_confidence: float | None = Field(default=None, ge=0, le=1)
    error_message: str | None = None


class Submission(_GradedStatusMixin):
    """A student's uploaded answer document, as listed under an assessment"""
    id: int
    assessment_id: int | None = None
    student_id: int | None = None
    teacher_id: int | None = None
    file_path: str | None = None
    original_filename: str | None = None
    status: SubmissionStatus = "pending"
    ocr_text: str | None = None
    ocr_confidence: float | None = Field(default=None, ge=0, le=1)
    submitted_at: datetime | None = None
    processed_at: datetime | None = None
    student_name: str | None = None


class FileUploadResponse(BaseModel):
    submission_id: int
    message: str = ""
    status: str = "pending"


class SubmissionTracking(BaseModel):
    submission_id: int
    status: SubmissionStatusResponse
    last_updated: datetime


class SubmissionIdsIn(BaseModel):
    submission_ids: list[int] = Field(..., min_length=1)
