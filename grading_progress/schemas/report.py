# grading_progress/schemas/report.py
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class ReportType(str, Enum):
    SINGLE_STUDENT = "single_student"
    SCHOOL_ADMINISTRATIVE = "school_administrative"


class ReportFormat(str, Enum):
    EXCEL = "excel"
    PDF = "pdf"


class ReportRequest(BaseModel):
    report_type: ReportType
    semester_id: int
    student_ids: list[int] | None = None
    format: ReportFormat = ReportFormat.EXCEL
    recipient_email: str | None = None

    @model_validator(mode="after")
    def _check_type_requirements(self):
        if self.report_type == ReportType.SINGLE_STUDENT and len(self.student_ids or []) != 1:
            raise ValueError("a single student report needs exactly one student id")
        if self.report_type == ReportType.SCHOOL_ADMINISTRATIVE and not self.recipient_email:
            raise ValueError("an administrative report needs a recipient email")
        return self


class ReportResponse(BaseModel):
    """Generated report; summary and per-student data are passed through as-is"""
    report_id: str
    report_type: ReportType
    generated_at: datetime
    teacher_id: int | None = None
    file_path: str | None = None
    summary: dict[str, Any] = {}
    student_data: list[dict[str, Any]] = []
    total_students_included: int = 0
    date_range_start: str | None = None
    date_range_end: str | None = None


class EmailReportRequest(BaseModel):
    report_id: str
    recipient_emails: list[str] = Field(..., min_length=1)
    subject: str
    message: str | None = None
    include_attachment: bool = True


class EmailReportResponse(BaseModel):
    message: str
    emails_sent: int = 0
    failed_emails: int = 0
    details: list[str] | None = None


class ReportHistoryItem(BaseModel):
    report_id: str
    report_type: ReportType
    generated_at: datetime
    date_range_start: str | None = None
    date_range_end: str | None = None
    total_students: int = 0
    file_path: str | None = None
    status: str


class ReportHistoryResponse(BaseModel):
    reports: list[ReportHistoryItem] = []
    total_count: int = 0
    page: int = 1
    page_size: int = 10
