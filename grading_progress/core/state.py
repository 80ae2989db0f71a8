# grading_progress/core/state.py
"""
Application state for the grading views.

One GradingState is built at startup and handed to endpoints through a
FastAPI dependency. Actions call the grading backend, store the outcome,
and record a display message in `error` / `upload_error` when they fail.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence

from grading_progress.core.config import settings
from grading_progress.core.errors import to_error_message
from grading_progress.schemas.grading_item import (
    AssessmentStats,
    AssessmentWithSubmissions,
    SourceType,
    UnifiedGradingItem,
)
from grading_progress.schemas.progress import ProgressSnapshot
from grading_progress.schemas.score import ScoreAnalytics
from grading_progress.schemas.submission import (
    Submission,
    SubmissionStatus,
    SubmissionStatusResponse,
    SubmissionTracking,
)
from grading_progress.schemas.upload import BatchUpload, BatchUploadResult
from grading_progress.services.grading_client import GradingApiClient
from grading_progress.services.polling_service import PollResult, SubmissionPoller
from grading_progress.services.progress_service import ProgressAggregator
from grading_progress.services.score_analytics import analyze_scores
from grading_progress.services.upload_service import UploadItem, execute_batch_upload
from grading_progress.services.upload_tracker import BatchUploadTracker, new_batch_id

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GradingState:
    def __init__(self, client: GradingApiClient, *, poller: Optional[SubmissionPoller] = None):
        self.client = client
        self.poller = poller or SubmissionPoller(self.client.get_submission_status)

        self.tracking: Dict[int, SubmissionTracking] = {}
        self.uploads = BatchUploadTracker()
        self.watches: Dict[str, ProgressAggregator] = {}

        self.grading_items: List[UnifiedGradingItem] = []
        self.grading_items_stats: Optional[Dict[str, int]] = None
        self.current_assessment: Optional[AssessmentWithSubmissions] = None
        self.submissions: List[Submission] = []
        self.assessment_stats: Optional[AssessmentStats] = None

        self.is_polling = False
        self.last_poll_result: Optional[PollResult] = None
        self.error: Optional[str] = None
        self.upload_error: Optional[str] = None

        # bumped on reset; work started under an older generation is discarded
        self._generation = 0
        self._inflight: Dict[int, asyncio.Task] = {}
        self._poll_task: Optional[asyncio.Task] = None
        self._poll_cancel: Optional[asyncio.Event] = None
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Error bookkeeping
    # ------------------------------------------------------------------

    async def _run(self, action: Awaitable[Any], fallback: str, *, upload: bool = False) -> Any:
        if upload:
            self.upload_error = None
        else:
            self.error = None
        try:
            return await action
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = to_error_message(e, fallback)
            if upload:
                self.upload_error = message
            else:
                self.error = message
            raise

    def clear_error(self) -> None:
        self.error = None

    def clear_upload_error(self) -> None:
        self.upload_error = None

    # ------------------------------------------------------------------
    # Submission tracking
    # ------------------------------------------------------------------

    def update_submission_tracking(self, submission_id: int, status: SubmissionStatusResponse) -> None:
        self.tracking[submission_id] = SubmissionTracking(
            submission_id=submission_id,
            status=status,
            last_updated=_utcnow(),
        )
        for watch in self.watches.values():
            watch.update(self.tracking)

    def _tracking_callback(self):
        generation = self._generation

        def _apply(submission_id: int, status: SubmissionStatusResponse) -> None:
            if generation != self._generation:
                logger.debug(f"Dropping stale status for submission {submission_id}")
                return
            self.update_submission_tracking(submission_id, status)

        return _apply

    async def fetch_submission_status(self, submission_id: int) -> SubmissionStatusResponse:
        """Fetch and record one status; concurrent calls for the same id share one request."""
        task = self._inflight.get(submission_id)
        if task is None:
            task = asyncio.ensure_future(self.client.get_submission_status(submission_id))
            self._inflight[submission_id] = task
            task.add_done_callback(lambda _t: self._inflight.pop(submission_id, None))

        apply = self._tracking_callback()
        status = await self._run(
            asyncio.shield(task), f"Failed to fetch status of submission {submission_id}"
        )
        apply(submission_id, status)
        return status

    async def refresh_all(self, submission_ids: Iterable[int]) -> Dict[int, SubmissionStatusResponse]:
        ids = list(dict.fromkeys(submission_ids))
        results = await asyncio.gather(
            *(self.fetch_submission_status(sid) for sid in ids),
            return_exceptions=True,
        )
        statuses: Dict[int, SubmissionStatusResponse] = {}
        for sid, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.warning(f"Failed to refresh submission {sid}: {result}")
            else:
                statuses[sid] = result
        return statuses

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_submissions(self, submission_ids: Iterable[int]) -> PollResult:
        """Run one polling session to its end, replacing any running one."""
        if self._poll_cancel is not None:
            # one polling session at a time
            self._poll_cancel.set()
        cancel_event = asyncio.Event()
        self._poll_cancel = cancel_event
        self.is_polling = True
        try:
            result = await self.poller.poll(
                submission_ids,
                self._tracking_callback(),
                cancel_event=cancel_event,
            )
        finally:
            current = self._poll_cancel is cancel_event
            if current:
                self.is_polling = False
                self._poll_cancel = None
        if current:
            self.last_poll_result = result
        return result

    async def start_polling(self, submission_ids: Sequence[int]) -> asyncio.Task:
        await self.stop_polling()
        task = asyncio.create_task(self._poll_in_background(list(submission_ids)))
        self._poll_task = task
        self.is_polling = True
        return task

    async def _poll_in_background(self, submission_ids: List[int]) -> Optional[PollResult]:
        try:
            return await self._run(self.poll_submissions(submission_ids), "Polling failed")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("Background polling failed", exc_info=True)
            return None

    async def stop_polling(self) -> None:
        if self._poll_cancel is not None:
            self._poll_cancel.set()
            self._poll_cancel = None
        self.is_polling = False

        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Progress watches
    # ------------------------------------------------------------------

    def add_watch(self, submission_ids: Iterable[int]) -> ProgressAggregator:
        watch_id = uuid.uuid4().hex[:12]
        watch = ProgressAggregator(
            submission_ids,
            on_all_completed=lambda results: logger.info(
                f"Progress watch {watch_id}: all {len(results)} submissions finished"
            ),
            watch_id=watch_id,
        )
        watch.update(self.tracking)
        self.watches[watch_id] = watch
        return watch

    def get_watch(self, watch_id: str) -> Optional[ProgressAggregator]:
        return self.watches.get(watch_id)

    def remove_watch(self, watch_id: str) -> bool:
        return self.watches.pop(watch_id, None) is not None

    def progress_for(self, submission_ids: Iterable[int]) -> ProgressSnapshot:
        return ProgressAggregator(submission_ids).update(self.tracking)

    # ------------------------------------------------------------------
    # Batch uploads
    # ------------------------------------------------------------------

    async def upload_batch(
        self,
        assessment_id: int,
        items: Sequence[UploadItem],
        *,
        source_type: Optional[SourceType] = None,
        batch_id: Optional[str] = None,
    ) -> BatchUploadResult:
        batch = self.uploads.start(
            batch_id or new_batch_id(),
            assessment_id,
            [item.file_name for item in items],
            source_type=source_type,
        )
        return await self._execute_upload(batch, items)

    def start_batch_upload(
        self,
        assessment_id: int,
        items: Sequence[UploadItem],
        *,
        source_type: Optional[SourceType] = None,
    ) -> BatchUpload:
        """Register the batch now and upload it in the background."""
        batch = self.uploads.start(
            new_batch_id(),
            assessment_id,
            [item.file_name for item in items],
            source_type=source_type,
        )
        self._spawn(self._execute_upload(batch, items))
        return batch

    async def _execute_upload(self, batch: BatchUpload, items: Sequence[UploadItem]) -> BatchUploadResult:
        return await self._run(
            execute_batch_upload(
                self.client,
                self.uploads,
                batch.id,
                batch.assessment_id,
                items,
                source_type=batch.source_type,
            ),
            "Failed to upload batch submissions",
            upload=True,
        )

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())

    # ------------------------------------------------------------------
    # Assessments and grading items
    # ------------------------------------------------------------------

    async def load_grading_items(self, *, skip: int = 0, limit: int = 100, item_type: Optional[SourceType] = None):
        listing = await self._run(
            self.client.get_grading_items(skip=skip, limit=limit, item_type=item_type),
            "Failed to fetch grading items",
        )
        self.grading_items = listing.items
        self.grading_items_stats = {
            "total": listing.total,
            "manual_assessments_count": listing.manual_assessments_count,
            "ai_exams_count": listing.ai_exams_count,
        }
        return listing

    async def load_assessment(self, assessment_id: int) -> AssessmentWithSubmissions:
        assessment = await self._run(
            self.client.get_assessment(assessment_id), "Failed to fetch assessment"
        )
        self.current_assessment = assessment
        self.submissions = assessment.submissions
        return assessment

    async def load_grading_item(self, item_id: int) -> AssessmentWithSubmissions:
        """Load a unified grading item in the same shape as an assessment."""

        async def _load() -> AssessmentWithSubmissions:
            item = await self.client.get_grading_item(item_id)
            submissions = await self.client.get_item_submissions(
                item_id, item.source_type, skip=0, limit=1000
            )
            return AssessmentWithSubmissions(
                id=item.id,
                title=item.title,
                description=item.description or "",
                answer_key=json.dumps(item.answer_key),
                max_score=item.max_score or 0,
                teacher_id=item.teacher_id,
                status=item.status,
                created_at=item.created_at,
                updated_at=item.updated_at or item.created_at,
                total_submissions=item.total_submissions,
                submissions=submissions,
            )

        assessment = await self._run(_load(), "Failed to fetch grading item")
        self.current_assessment = assessment
        self.submissions = assessment.submissions
        return assessment

    async def load_item_submissions(
        self,
        item_id: int,
        source_type: SourceType,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Submission]:
        submissions = await self._run(
            self.client.get_item_submissions(item_id, source_type, skip=skip, limit=limit),
            "Failed to fetch submissions",
        )
        self.submissions = submissions
        if not (
            source_type == "manual_assessment"
            and self.current_assessment is not None
            and self.current_assessment.id == item_id
        ):
            # submissions no longer belong to the loaded assessment
            self.current_assessment = None
        return submissions

    async def load_item_stats(self, item_id: int, source_type: SourceType) -> AssessmentStats:
        stats = await self._run(
            self.client.get_item_stats(item_id, source_type), "Failed to fetch stats"
        )
        self.assessment_stats = stats
        return stats

    def filtered_submissions(
        self,
        *,
        status: Optional[SubmissionStatus] = None,
        student_id: Optional[int] = None,
        submissions: Optional[Sequence[Submission]] = None,
    ) -> List[Submission]:
        source = self.submissions if submissions is None else submissions
        return [
            s for s in source
            if (status is None or s.status == status)
            and (student_id is None or s.student_id == student_id)
        ]

    def score_analytics(self, **filters) -> ScoreAnalytics:
        return analyze_scores(self.filtered_submissions(**filters))

    async def assessment_analytics(
        self,
        assessment_id: int,
        *,
        status: Optional[SubmissionStatus] = None,
        student_id: Optional[int] = None,
    ) -> ScoreAnalytics:
        """Score analytics over one assessment's own submissions, loading it if needed."""
        assessment = self.current_assessment
        if assessment is None or assessment.id != assessment_id:
            assessment = await self.load_assessment(assessment_id)
        return self.score_analytics(
            status=status,
            student_id=student_id,
            submissions=assessment.submissions,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def reset(self) -> None:
        """Drop all view state; late responses from earlier work are ignored."""
        self._generation += 1
        await self.stop_polling()
        for task in list(self._background):
            task.cancel()
        self.tracking.clear()
        self.uploads.clear_all()
        self.watches.clear()
        self.grading_items = []
        self.grading_items_stats = None
        self.current_assessment = None
        self.submissions = []
        self.assessment_stats = None
        self.last_poll_result = None
        self.error = None
        self.upload_error = None

    async def shutdown(self) -> None:
        await self.reset()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.client.aclose()
        logger.info(f"{settings.PROJECT_NAME} state shut down")
