# grading_progress/services/polling_service.py
"""
Submission status polling.

Repeatedly fetches the status of every submission that has not reached a
terminal state yet, until all are terminal or the attempt limit is reached.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable

from grading_progress.core.config import settings
from grading_progress.core.errors import GradingClientError
from grading_progress.schemas.submission import SubmissionStatusResponse

logger = logging.getLogger(__name__)

StatusFetcher = Callable[[int], Awaitable[SubmissionStatusResponse]]
UpdateCallback = Callable[[int, SubmissionStatusResponse], None]


class PollOutcome(str, Enum):
    COMPLETED = "completed"  # every submission reached a terminal status
    EXHAUSTED = "exhausted"  # attempt limit reached with submissions still pending
    CANCELLED = "cancelled"


@dataclass
class PollResult:
    outcome: PollOutcome
    attempts: int
    pending_ids: list[int] = field(default_factory=list)
    statuses: dict[int, SubmissionStatusResponse] = field(default_factory=dict)


class SubmissionPoller:
    def __init__(
        self,
        fetch_status: StatusFetcher,
        *,
        max_attempts: int | None = None,
        interval_ms: int | None = None,
        max_concurrency: int | None = None,
    ):
        self.fetch_status = fetch_status
        self.max_attempts = max_attempts if max_attempts is not None else settings.POLL_MAX_ATTEMPTS
        self.interval_ms = interval_ms if interval_ms is not None else settings.POLL_INTERVAL_MS
        self.max_concurrency = max(1, max_concurrency or settings.POLL_MAX_CONCURRENCY)

    async def poll(
        self,
        submission_ids: Iterable[int],
        on_update: UpdateCallback,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> PollResult:
        """
        Poll until every id is terminal, the attempt limit is reached, or `cancel_event` is set.

        `on_update` sees every successful response, terminal or not. Responses
        that arrive after cancellation are dropped without calling it.
        """
        cancel_event = cancel_event or asyncio.Event()
        pending = list(dict.fromkeys(submission_ids))
        statuses: dict[int, SubmissionStatusResponse] = {}
        attempts = 0

        while pending and attempts < self.max_attempts:
            if cancel_event.is_set():
                return PollResult(PollOutcome.CANCELLED, attempts, pending, statuses)

            attempts += 1
            round_results = await self._poll_round(pending)

            if cancel_event.is_set():
                logger.debug(f"Discarding poll round {attempts} results after cancellation")
                return PollResult(PollOutcome.CANCELLED, attempts, pending, statuses)

            for submission_id, status in round_results:
                statuses[submission_id] = status
                on_update(submission_id, status)

            pending = [
                sid for sid in pending
                if sid not in statuses or not statuses[sid].is_terminal
            ]

            if pending and attempts < self.max_attempts:
                if await self._wait_or_cancel(cancel_event):
                    return PollResult(PollOutcome.CANCELLED, attempts, pending, statuses)

        if pending:
            logger.info(
                f"Polling gave up after {attempts} attempts; "
                f"{len(pending)} submission(s) still pending: {pending}"
            )
            return PollResult(PollOutcome.EXHAUSTED, attempts, pending, statuses)

        logger.info(f"All polled submissions reached a terminal status after {attempts} attempts")
        return PollResult(PollOutcome.COMPLETED, attempts, [], statuses)

    async def _poll_round(self, pending: list[int]) -> list[tuple[int, SubmissionStatusResponse]]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _fetch(submission_id: int) -> SubmissionStatusResponse | None:
            async with semaphore:
                try:
                    return await self.fetch_status(submission_id)
                except GradingClientError as e:
                    # retried on the next round
                    logger.warning(f"Error polling status of submission {submission_id}: {e}")
                    return None

        responses = await asyncio.gather(*(_fetch(sid) for sid in pending))
        return [
            (sid, status)
            for sid, status in zip(pending, responses)
            if status is not None
        ]

    async def _wait_or_cancel(self, cancel_event: asyncio.Event) -> bool:
        """Sleep one interval; True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.interval_ms / 1000)
        except asyncio.TimeoutError:
            return False
        return True
