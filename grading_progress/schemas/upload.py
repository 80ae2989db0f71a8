# grading_progress/schemas/upload.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, computed_field

from grading_progress.schemas.grading_item import SourceType
from grading_progress.schemas.submission import FileUploadResponse
from grading_progress.services.progress_service import percent

UploadStatus = Literal["pending", "uploading", "completed", "failed"]

UPLOAD_TERMINAL_STATUSES = frozenset({"completed", "failed"})


class UploadFileEntry(BaseModel):
    file_index: int
    file_name: str
    status: UploadStatus = "pending"
    progress: int = 0
    submission_id: int | None = None  # set on completed
    error: str | None = None  # set on failed

    @property
    def is_terminal(self) -> bool:
        return self.status in UPLOAD_TERMINAL_STATUSES


class BatchUpload(BaseModel):
    id: str
    assessment_id: int
    source_type: SourceType | None = None
    files: list[UploadFileEntry]
    is_active: bool = True
    started_at: datetime
    completed_at: datetime | None = None

    @computed_field
    @property
    def all_files_terminal(self) -> bool:
        return all(f.is_terminal for f in self.files)

    @computed_field
    @property
    def progress(self) -> int:
        """Mean file progress, rounded half up."""
        return percent(sum(f.progress for f in self.files), 100 * len(self.files))


class BatchUploadResult(BaseModel):
    batch_id: str
    # one slot per file_index
    results: list[FileUploadResponse | None]
    errors: list[str | None]

    @property
    def successful(self) -> list[FileUploadResponse]:
        return [r for r in self.results if r is not None]

    @property
    def failed_indices(self) -> list[int]:
        return [i for i, err in enumerate(self.errors) if err is not None]
