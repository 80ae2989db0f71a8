# grading_progress/schemas/progress.py
from pydantic import BaseModel

from grading_progress.schemas.submission import SubmissionStatusResponse


class ProgressStats(BaseModel):
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def terminal(self) -> int:
        return self.completed + self.failed

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.terminal == self.total


class ProgressSnapshot(BaseModel):
    watch_id: str | None = None
    submission_ids: list[int]
    stats: ProgressStats
    overall_progress: int
    processing_progress: int
    is_complete: bool
    notified: bool
    # filled once the all-completed notification has fired
    final_statuses: dict[int, SubmissionStatusResponse] | None = None
