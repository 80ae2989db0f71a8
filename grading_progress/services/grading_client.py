"""
Grading API Client
Async wrapper over the upstream grading backend (assessments, submissions, reports)
"""

import logging
import math
import mimetypes
from typing import Any, AsyncIterator, Callable

import httpx
from pydantic import TypeAdapter, ValidationError

from grading_progress.core.config import settings
from grading_progress.core.errors import (
    GradingApiError,
    MalformedResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RequestTimeoutError,
)
from grading_progress.schemas.grading_item import (
    AssessmentStats,
    AssessmentWithSubmissions,
    SourceType,
    UnifiedGradingItem,
    UnifiedGradingListResponse,
)
from grading_progress.schemas.report import (
    EmailReportRequest,
    EmailReportResponse,
    ReportHistoryResponse,
    ReportRequest,
    ReportResponse,
)
from grading_progress.schemas.submission import (
    FileUploadResponse,
    Submission,
    SubmissionStatusResponse,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


def _error_detail(response: httpx.Response) -> str:
    """Prefer the backend's human readable `detail` over the bare status line."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("detail"), str):
        return body["detail"]
    return f"{response.status_code} {response.reason_phrase}".strip()


def _raise_for_status(response: httpx.Response) -> None:
    status_code = response.status_code
    if status_code < 400:
        return

    detail = _error_detail(response)
    if status_code == 404:
        raise NotFoundError(detail, status_code=status_code)
    if status_code in (401, 403):
        raise PermissionDeniedError(detail, status_code=status_code)
    raise GradingApiError(detail, status_code=status_code)


def _parse(model: Any, payload: Any) -> Any:
    try:
        return TypeAdapter(model).validate_python(payload)
    except ValidationError as e:
        name = getattr(model, "__name__", str(model))
        raise MalformedResponseError(
            f"unexpected {name} payload from grading backend "
            f"({e.error_count()} validation error(s))"
        ) from e


class GradingApiClient:
    """
    Thin async client for the grading backend.

    Every method performs exactly one logical call and raises a
    GradingClientError subclass on failure. Retry policy belongs to callers.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        chunk_size: int | None = None,
    ):
        headers = {"Accept": "application/json"}
        token = token if token is not None else settings.GRADING_API_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._chunk_size = chunk_size or settings.UPLOAD_CHUNK_SIZE
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.GRADING_API_URL).rstrip("/"),
            headers=headers,
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{method} {path} timed out") from e
        except httpx.RequestError as e:
            # also covers undecodable response bodies
            raise NetworkError(f"{method} {path} failed: {e}") from e

        _raise_for_status(response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
            ) from e

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    async def get_submission_status(self, submission_id: int) -> SubmissionStatusResponse:
        payload = await self._send("GET", f"/grading/submissions/{submission_id}/status")
        return _parse(SubmissionStatusResponse, payload)

    async def upload_submission(
        self,
        item_id: int,
        *,
        student_id: int,
        file_name: str,
        content: bytes,
        source_type: SourceType | None = None,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> FileUploadResponse:
        """
        Upload one answer document as multipart form data.

        With a source_type the unified grading-item endpoint is used, otherwise
        the legacy assessment endpoint. `on_progress` receives the percentage
        (0-100) of the request body handed to the transport so far.
        """
        if source_type is None:
            path = f"/grading/assessments/{item_id}/submissions"
            data = {"student_id": str(student_id)}
        else:
            path = f"/grading/grading-items/{item_id}/submissions"
            data = {"source_type": source_type, "student_id": str(student_id)}

        content_type = content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"

        # Encode the multipart body once so it can be streamed back in chunks
        encoded = self._client.build_request(
            "POST",
            path,
            data=data,
            files={"file": (file_name, content, content_type)},
        )
        body = encoded.read()

        payload = await self._send(
            "POST",
            path,
            content=self._stream_body(body, on_progress),
            headers={
                "Content-Type": encoded.headers["Content-Type"],
                "Content-Length": str(len(body)),
            },
        )
        return _parse(FileUploadResponse, payload)

    async def _stream_body(
        self, body: bytes, on_progress: ProgressCallback | None
    ) -> AsyncIterator[bytes]:
        total = len(body)
        sent = 0
        for start in range(0, total, self._chunk_size):
            chunk = body[start:start + self._chunk_size]
            yield chunk
            sent += len(chunk)
            if on_progress is not None and total:
                on_progress(math.floor(sent * 100 / total + 0.5))

    # ------------------------------------------------------------------
    # Grading items and assessments
    # ------------------------------------------------------------------

    async def get_grading_items(
        self,
        *,
        skip: int = 0,
        limit: int = 100,
        item_type: SourceType | None = None,
    ) -> UnifiedGradingListResponse:
        params: dict[str, Any] = {"skip": skip, "limit": limit}
        if item_type:
            params["item_type"] = item_type
        payload = await self._send("GET", "/grading/grading-items", params=params)
        return _parse(UnifiedGradingListResponse, payload)

    async def get_grading_item(self, item_id: int, *, page_size: int = 100) -> UnifiedGradingItem:
        # The backend has no single-item endpoint; page through the listing
        skip = 0
        while True:
            listing = await self.get_grading_items(skip=skip, limit=page_size)
            for item in listing.items:
                if item.id == item_id:
                    return item
            skip += len(listing.items)
            if not listing.items or skip >= listing.total:
                break
        raise NotFoundError(f"Grading item {item_id} not found", status_code=404)

    async def get_assessment(self, assessment_id: int) -> AssessmentWithSubmissions:
        payload = await self._send("GET", f"/grading/assessments/{assessment_id}")
        return _parse(AssessmentWithSubmissions, payload)

    async def get_assessment_submissions(
        self,
        assessment_id: int,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Submission]:
        payload = await self._send(
            "GET",
            f"/grading/assessments/{assessment_id}/submissions",
            params={"skip": skip, "limit": limit},
        )
        return _parse(list[Submission], payload)

    async def get_assessment_stats(self, assessment_id: int) -> AssessmentStats:
        payload = await self._send("GET", f"/grading/assessments/{assessment_id}/stats")
        return _parse(AssessmentStats, payload)

    async def get_item_submissions(
        self,
        item_id: int,
        source_type: SourceType,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Submission]:
        if source_type == "manual_assessment":
            return await self.get_assessment_submissions(item_id, skip=skip, limit=limit)
        # AI exam submissions are not exposed by the backend yet
        logger.debug(f"No submission listing for ai_exam item {item_id}")
        return []

    async def get_item_stats(self, item_id: int, source_type: SourceType) -> AssessmentStats:
        if source_type == "manual_assessment":
            return await self.get_assessment_stats(item_id)
        return AssessmentStats(assessment_id=item_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def generate_report(self, request: ReportRequest) -> ReportResponse:
        payload = await self._send(
            "POST", "/reports/generate", json=request.model_dump(mode="json", exclude_none=True)
        )
        return _parse(ReportResponse, payload)

    async def email_report(self, request: EmailReportRequest) -> EmailReportResponse:
        payload = await self._send(
            "POST", "/reports/email", json=request.model_dump(mode="json", exclude_none=True)
        )
        return _parse(EmailReportResponse, payload)

    async def get_report_history(self, *, page: int = 1, page_size: int = 10) -> ReportHistoryResponse:
        payload = await self._send(
            "GET", "/reports/history/list", params={"page": page, "page_size": page_size}
        )
        return _parse(ReportHistoryResponse, payload)
