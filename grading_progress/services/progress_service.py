# grading_progress/services/progress_service.py
import logging
import math
from typing import Callable, Iterable, List, Mapping, Optional

from grading_progress.schemas.progress import ProgressSnapshot, ProgressStats
from grading_progress.schemas.submission import SubmissionStatusResponse, SubmissionTracking

logger = logging.getLogger(__name__)

AllCompletedCallback = Callable[[dict[int, SubmissionStatusResponse]], None]


def percent(part: int, total: int) -> int:
    """Whole percentage rounded half up; 0 when total is 0."""
    if total <= 0:
        return 0
    return math.floor(part * 100 / total + 0.5)


def compute_progress_stats(
    submission_ids: Iterable[int],
    tracking: Mapping[int, SubmissionTracking],
) -> ProgressStats:
    stats = ProgressStats()
    for submission_id in submission_ids:
        stats.total += 1
        entry = tracking.get(submission_id)
        if entry is None:
            stats.pending += 1
            continue
        status = entry.status.status
        if status == "processing":
            stats.processing += 1
        elif status == "completed":
            stats.completed += 1
        elif status == "failed":
            stats.failed += 1
        else:
            stats.pending += 1
    return stats


def overall_progress(stats: ProgressStats) -> int:
    return percent(stats.completed + stats.failed, stats.total)


def processing_progress(stats: ProgressStats) -> int:
    return percent(stats.processing + stats.completed + stats.failed, stats.total)


class ProgressAggregator:
    """
    Derives progress figures for a fixed list of submissions and fires
    `on_all_completed` once per stretch in which all of them are terminal.

    `notified` is set on the transition into the all-terminal state and
    cleared whenever a recomputation finds the set not all-terminal, which
    re-arms the notification.
    """

    def __init__(
        self,
        submission_ids: Iterable[int],
        on_all_completed: Optional[AllCompletedCallback] = None,
        *,
        watch_id: Optional[str] = None,
    ):
        self.watch_id = watch_id
        self.submission_ids: List[int] = list(dict.fromkeys(submission_ids))
        self.on_all_completed = on_all_completed
        self.notified = False
        self.final_statuses: Optional[dict[int, SubmissionStatusResponse]] = None
        self.stats = ProgressStats(total=len(self.submission_ids), pending=len(self.submission_ids))

    def set_submission_ids(self, submission_ids: Iterable[int]) -> None:
        self.submission_ids = list(dict.fromkeys(submission_ids))

    def update(self, tracking: Mapping[int, SubmissionTracking]) -> ProgressSnapshot:
        # always recompute from the whole snapshot; arrivals may be out of order
        self.stats = compute_progress_stats(self.submission_ids, tracking)

        if self.stats.is_complete:
            if not self.notified:
                self.notified = True
                self.final_statuses = {
                    sid: tracking[sid].status
                    for sid in self.submission_ids
                    if sid in tracking
                }
                logger.info(
                    f"All {self.stats.total} tracked submissions finished "
                    f"({self.stats.completed} completed, {self.stats.failed} failed)"
                )
                if self.on_all_completed is not None:
                    self.on_all_completed(dict(self.final_statuses))
        else:
            self.notified = False
            self.final_statuses = None

        return self.snapshot()

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            watch_id=self.watch_id,
            submission_ids=list(self.submission_ids),
            stats=self.stats.model_copy(),
            overall_progress=overall_progress(self.stats),
            processing_progress=processing_progress(self.stats),
            is_complete=self.stats.is_complete,
            notified=self.notified,
            final_statuses=self.final_statuses,
        )
