# grading_progress/services/upload_service.py
import asyncio
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

from grading_progress.core.config import settings
from grading_progress.core.errors import GradingClientError, UploadValidationError
from grading_progress.schemas.grading_item import SourceType
from grading_progress.schemas.submission import FileUploadResponse
from grading_progress.schemas.upload import BatchUploadResult
from grading_progress.services.grading_client import GradingApiClient
from grading_progress.services.upload_tracker import BatchUploadTracker

logger = logging.getLogger(__name__)


@dataclass
class UploadItem:
    """One answer document waiting to be uploaded for a student."""
    student_id: int
    file_name: str
    content: bytes
    content_type: Optional[str] = None


def validate_upload(item: UploadItem) -> None:
    extension = os.path.splitext(item.file_name)[1].lower()
    allowed = [ext.lower() for ext in settings.UPLOAD_ALLOWED_EXTENSIONS]
    if extension not in allowed:
        raise UploadValidationError(
            f"File {item.file_name} has an unsupported type. "
            f"Supported: {', '.join(allowed)}"
        )
    if not item.content:
        raise UploadValidationError(f"File {item.file_name} is empty.")
    max_bytes = settings.UPLOAD_MAX_SIZE_MB * 1024 * 1024
    if len(item.content) > max_bytes:
        raise UploadValidationError(
            f"File {item.file_name} is too large. "
            f"Maximum size is {settings.UPLOAD_MAX_SIZE_MB}MB."
        )
    if item.student_id <= 0:
        raise UploadValidationError(f"File {item.file_name} is not assigned to a student.")


async def execute_batch_upload(
    client: GradingApiClient,
    tracker: BatchUploadTracker,
    batch_id: str,
    assessment_id: int,
    items: Sequence[UploadItem],
    *,
    source_type: SourceType | None = None,
    max_concurrency: int | None = None,
) -> BatchUploadResult:
    """
    Upload every item of an already started batch and report into the tracker.

    With max_concurrency=1 (the default setting) files go one after another in
    index order. A failing file is recorded on its own entry and the rest of
    the batch carries on. The batch is completed once every file has resolved.
    """
    concurrency = max(1, max_concurrency or settings.UPLOAD_MAX_CONCURRENCY)
    semaphore = asyncio.Semaphore(concurrency)
    results: List[Optional[FileUploadResponse]] = [None] * len(items)
    errors: List[Optional[str]] = [None] * len(items)

    async def _upload_one(index: int, item: UploadItem) -> None:
        async with semaphore:
            try:
                validate_upload(item)
                response = await client.upload_submission(
                    assessment_id,
                    student_id=item.student_id,
                    file_name=item.file_name,
                    content=item.content,
                    content_type=item.content_type,
                    source_type=source_type,
                    on_progress=lambda progress: tracker.report_progress(batch_id, index, progress),
                )
            except (GradingClientError, UploadValidationError) as e:
                logger.warning(f"Upload of {item.file_name} (batch {batch_id}, file {index}) failed: {e}")
                errors[index] = str(e)
                tracker.report_failure(batch_id, index, str(e))
            except Exception:
                # every file must be terminal before complete()
                logger.error(
                    f"Unexpected error uploading {item.file_name} (batch {batch_id}, file {index})",
                    exc_info=True,
                )
                errors[index] = f"Upload of {item.file_name} failed"
                tracker.report_failure(batch_id, index, errors[index])
                if settings.DEBUG:
                    raise
            else:
                results[index] = response
                tracker.report_success(batch_id, index, response.submission_id)

    try:
        outcomes = await asyncio.gather(
            *(_upload_one(i, item) for i, item in enumerate(items)),
            return_exceptions=True,
        )
    finally:
        tracker.complete(batch_id)

    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome

    return BatchUploadResult(batch_id=batch_id, results=results, errors=errors)
