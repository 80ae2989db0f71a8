# grading_progress/services/upload_tracker.py
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from grading_progress.core.errors import BatchNotFoundError
from grading_progress.schemas.grading_item import SourceType
from grading_progress.schemas.upload import BatchUpload, UploadFileEntry

logger = logging.getLogger(__name__)


def new_batch_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchUploadTracker:
    """
    Per-file state of batch uploads.

    Pure bookkeeping: whoever performs the uploads reports progress, success
    and failure here. File entries are addressed by the index they got when
    the batch started.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._batches: dict[str, BatchUpload] = {}
        self.active_batch_id: Optional[str] = None

    def start(
        self,
        batch_id: str,
        assessment_id: int,
        file_names: Iterable[str],
        *,
        source_type: SourceType | None = None,
    ) -> BatchUpload:
        if batch_id in self._batches:
            raise ValueError(f"batch upload {batch_id} already exists")

        batch = BatchUpload(
            id=batch_id,
            assessment_id=assessment_id,
            source_type=source_type,
            files=[
                UploadFileEntry(file_index=index, file_name=name)
                for index, name in enumerate(file_names)
            ],
            is_active=True,
            started_at=self._clock(),
        )
        self._batches[batch_id] = batch
        self.active_batch_id = batch_id
        logger.info(f"Started batch upload {batch_id} with {len(batch.files)} file(s)")
        return batch

    def _entry(self, batch_id: str, file_index: int) -> Optional[UploadFileEntry]:
        batch = self._batches.get(batch_id)
        if batch is None:
            # batch cleared while uploads were still in flight
            logger.debug(f"Ignoring report for unknown batch {batch_id}")
            return None
        if not 0 <= file_index < len(batch.files):
            logger.warning(f"Ignoring report for file {file_index} outside batch {batch_id}")
            return None
        entry = batch.files[file_index]
        if entry.is_terminal:
            logger.debug(f"Ignoring report for finished file {file_index} of batch {batch_id}")
            return None
        return entry

    def report_progress(self, batch_id: str, file_index: int, progress: int) -> None:
        entry = self._entry(batch_id, file_index)
        if entry is None:
            return
        entry.status = "uploading"
        entry.progress = max(entry.progress, progress)

    def report_success(self, batch_id: str, file_index: int, submission_id: int) -> None:
        entry = self._entry(batch_id, file_index)
        if entry is None:
            return
        entry.status = "completed"
        entry.progress = 100
        entry.submission_id = submission_id

    def report_failure(self, batch_id: str, file_index: int, error: str) -> None:
        entry = self._entry(batch_id, file_index)
        if entry is None:
            return
        # progress keeps its last reported value
        entry.status = "failed"
        entry.error = error

    def complete(self, batch_id: str) -> None:
        batch = self._batches.get(batch_id)
        if batch is None:
            logger.debug(f"Ignoring completion of unknown batch {batch_id}")
            return
        batch.is_active = False
        batch.completed_at = self._clock()
        if self.active_batch_id == batch_id:
            self.active_batch_id = None

        failed = sum(1 for f in batch.files if f.status == "failed")
        logger.info(
            f"Completed batch upload {batch_id}: "
            f"{len(batch.files) - failed} succeeded, {failed} failed"
        )

    def get(self, batch_id: str) -> BatchUpload:
        batch = self._batches.get(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def list(self) -> List[BatchUpload]:
        return list(self._batches.values())

    def clear(self, batch_id: str) -> None:
        if self._batches.pop(batch_id, None) is None:
            raise BatchNotFoundError(batch_id)
        if self.active_batch_id == batch_id:
            self.active_batch_id = None

    def clear_all(self) -> None:
        self._batches.clear()
        self.active_batch_id = None

    @property
    def active_upload(self) -> Optional[BatchUpload]:
        if self.active_batch_id is None:
            return None
        return self._batches.get(self.active_batch_id)

    @property
    def is_uploading(self) -> bool:
        return any(b.is_active for b in self._batches.values())
