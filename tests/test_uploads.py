from datetime import datetime, timedelta, timezone

import pytest

from grading_progress.core.config import settings
from grading_progress.core.errors import BatchNotFoundError, UploadValidationError
from grading_progress.schemas.upload import BatchUpload, UploadFileEntry
from grading_progress.services.upload_service import UploadItem, execute_batch_upload, validate_upload
from grading_progress.services.upload_tracker import BatchUploadTracker, new_batch_id


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def tracker():
    return BatchUploadTracker(clock=FakeClock())


async def _run_batch(client, tracker, assessment_id, items, *, source_type=None, batch_id="batch_x"):
    tracker.start(batch_id, assessment_id, [item.file_name for item in items], source_type=source_type)
    return await execute_batch_upload(
        client, tracker, batch_id, assessment_id, items, source_type=source_type
    )


def _png(student_id, name=None, size=2048):
    return UploadItem(
        student_id=student_id,
        file_name=name or f"student_{student_id}.png",
        content=b"\x89PNG" + b"x" * size,
        content_type="image/png",
    )


class TestBatchUploadTracker:
    def test_start_creates_pending_entries(self, tracker):
        batch = tracker.start("batch_1", 7, ["a.png", "b.pdf"])

        assert batch.is_active
        assert [f.status for f in batch.files] == ["pending", "pending"]
        assert [f.file_index for f in batch.files] == [0, 1]
        assert tracker.active_upload is batch
        assert tracker.is_uploading

    def test_duplicate_batch_id_is_rejected(self, tracker):
        tracker.start("batch_1", 7, ["a.png"])
        with pytest.raises(ValueError):
            tracker.start("batch_1", 7, ["b.png"])

    def test_success_failure_and_completion(self, tracker):
        tracker.start("batch_1", 7, ["a.png", "b.png", "c.png"])

        tracker.report_progress("batch_1", 0, 40)
        tracker.report_success("batch_1", 0, 501)
        tracker.report_progress("batch_1", 1, 30)
        tracker.report_failure("batch_1", 1, "Could not store b.png")
        tracker.report_success("batch_1", 2, 502)
        tracker.complete("batch_1")

        batch = tracker.get("batch_1")
        first, second, third = batch.files
        assert (first.status, first.progress, first.submission_id) == ("completed", 100, 501)
        assert (second.status, second.progress, second.error) == ("failed", 30, "Could not store b.png")
        assert third.status == "completed"
        assert not batch.is_active
        assert batch.completed_at > batch.started_at
        assert batch.all_files_terminal
        assert tracker.active_upload is None
        assert not tracker.is_uploading

    def test_progress_never_goes_backwards(self, tracker):
        tracker.start("batch_1", 7, ["a.png"])
        tracker.report_progress("batch_1", 0, 60)
        tracker.report_progress("batch_1", 0, 20)

        entry = tracker.get("batch_1").files[0]
        assert entry.status == "uploading"
        assert entry.progress == 60

    def test_terminal_entries_ignore_late_reports(self, tracker):
        tracker.start("batch_1", 7, ["a.png"])
        tracker.report_success("batch_1", 0, 501)
        tracker.report_progress("batch_1", 0, 10)
        tracker.report_failure("batch_1", 0, "too late")

        entry = tracker.get("batch_1").files[0]
        assert entry.status == "completed"
        assert entry.progress == 100
        assert entry.error is None

    def test_reports_for_unknown_batch_or_index_are_ignored(self, tracker):
        tracker.start("batch_1", 7, ["a.png"])
        tracker.report_progress("batch_missing", 0, 50)
        tracker.report_success("batch_1", 5, 501)
        tracker.complete("batch_missing")

        assert tracker.get("batch_1").files[0].status == "pending"

    def test_clear_removes_batch(self, tracker):
        tracker.start("batch_1", 7, ["a.png"])
        tracker.clear("batch_1")

        with pytest.raises(BatchNotFoundError):
            tracker.get("batch_1")
        with pytest.raises(BatchNotFoundError):
            tracker.clear("batch_1")
        assert tracker.active_upload is None
        # reports still arriving for the cleared batch are dropped
        tracker.report_progress("batch_1", 0, 50)
        assert tracker.list() == []

    def test_new_batch_ids_are_unique(self):
        ids = {new_batch_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("batch_") for i in ids)


class TestValidateUpload:
    def test_accepts_supported_file(self):
        validate_upload(_png(1))

    @pytest.mark.parametrize(
        "item, message",
        [
            (UploadItem(student_id=1, file_name="notes.docx", content=b"data"), "unsupported type"),
            (UploadItem(student_id=1, file_name="empty.pdf", content=b""), "is empty"),
            (UploadItem(student_id=0, file_name="scan.jpg", content=b"data"), "not assigned"),
        ],
    )
    def test_rejects_invalid_files(self, item, message):
        with pytest.raises(UploadValidationError, match=message):
            validate_upload(item)

    def test_rejects_oversized_file(self, monkeypatch):
        monkeypatch.setattr(settings, "UPLOAD_MAX_SIZE_MB", 1)
        with pytest.raises(UploadValidationError, match="too large"):
            validate_upload(_png(1, size=1024 * 1024 + 1))


@pytest.mark.anyio
class TestUploadBatch:
    async def test_uploads_every_file_in_order(self, grading_client, backend, tracker):
        items = [_png(11), _png(12), _png(13)]

        result = await _run_batch(grading_client, tracker, 7, items, batch_id="batch_x")

        assert [u["file_name"] for u in backend.uploads] == [
            "student_11.png", "student_12.png", "student_13.png"
        ]
        assert [u["student_id"] for u in backend.uploads] == [11, 12, 13]
        assert all(u["kind"] == "assessments" for u in backend.uploads)
        assert [r.submission_id for r in result.successful] == [501, 502, 503]
        assert result.failed_indices == []

        batch = tracker.get("batch_x")
        assert not batch.is_active
        assert [f.submission_id for f in batch.files] == [501, 502, 503]
        assert batch.progress == 100

    async def test_one_failing_file_does_not_stop_the_batch(self, grading_client, backend, tracker):
        backend.failing_files.add("student_12.png")
        items = [_png(11), _png(12), _png(13)]

        result = await _run_batch(grading_client, tracker, 7, items, batch_id="batch_x")

        assert result.failed_indices == [1]
        assert result.errors[1] == "Could not store student_12.png"
        assert result.results[1] is None
        assert len(result.successful) == 2

        files = tracker.get("batch_x").files
        assert [f.status for f in files] == ["completed", "failed", "completed"]
        assert files[1].error == "Could not store student_12.png"
        assert not tracker.get("batch_x").is_active

    async def test_invalid_file_is_failed_without_upload(self, grading_client, backend, tracker):
        items = [_png(11), UploadItem(student_id=12, file_name="essay.txt", content=b"hello")]

        result = await _run_batch(grading_client, tracker, 7, items, batch_id="batch_x")

        assert len(backend.uploads) == 1
        assert result.failed_indices == [1]
        files = tracker.get("batch_x").files
        assert files[1].status == "failed"
        assert files[1].progress == 0

    async def test_progress_is_reported_while_streaming(self, grading_client, tracker):
        seen = []
        original = tracker.report_progress

        def record(batch_id, index, progress):
            seen.append(progress)
            original(batch_id, index, progress)

        tracker.report_progress = record
        await _run_batch(grading_client, tracker, 7, [_png(11, size=4096)], batch_id="batch_x")

        # 256 byte chunks: many intermediate values, ending at 100
        assert len(seen) > 2
        assert seen == sorted(seen)
        assert seen[-1] == 100

    async def test_grading_item_upload_sends_source_type(self, grading_client, backend, tracker):
        await _run_batch(
            grading_client, tracker, 9, [_png(11)], source_type="ai_exam", batch_id="batch_x"
        )

        upload = backend.uploads[0]
        assert upload["kind"] == "grading-items"
        assert upload["item_id"] == 9
        assert upload["source_type"] == "ai_exam"
        assert tracker.get("batch_x").source_type == "ai_exam"

    async def test_undecodable_response_fails_only_that_file(self, grading_client, backend, tracker):
        backend.garbled_files.add("student_11.png")
        items = [_png(11), _png(12), _png(13)]

        result = await _run_batch(grading_client, tracker, 7, items)

        batch = tracker.get("batch_x")
        assert [f.status for f in batch.files] == ["failed", "completed", "completed"]
        assert "failed" in batch.files[0].error
        assert result.failed_indices == [0]
        assert not batch.is_active
        assert batch.completed_at is not None

    async def test_unexpected_error_still_completes_the_batch(self, grading_client, tracker, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", False)
        client = BrokenUploadClient(grading_client, "student_11.png")

        result = await _run_batch(client, tracker, 7, [_png(11), _png(12), _png(13)])

        batch = tracker.get("batch_x")
        assert [f.status for f in batch.files] == ["failed", "completed", "completed"]
        assert batch.files[0].error == "Upload of student_11.png failed"
        assert result.errors[0] == "Upload of student_11.png failed"
        assert batch.all_files_terminal
        assert not batch.is_active

    async def test_unexpected_error_is_raised_in_debug_after_all_files_finish(
        self, grading_client, tracker, monkeypatch
    ):
        monkeypatch.setattr(settings, "DEBUG", True)
        client = BrokenUploadClient(grading_client, "student_11.png")

        with pytest.raises(RuntimeError, match="disk quota"):
            await _run_batch(client, tracker, 7, [_png(11), _png(12), _png(13)])

        batch = tracker.get("batch_x")
        assert [f.status for f in batch.files] == ["failed", "completed", "completed"]
        assert not batch.is_active


class BrokenUploadClient:
    """Delegates to a real client but blows up on one file name."""

    def __init__(self, client, broken_file):
        self.client = client
        self.broken_file = broken_file

    async def upload_submission(self, item_id, **kwargs):
        if kwargs["file_name"] == self.broken_file:
            raise RuntimeError("disk quota exceeded")
        return await self.client.upload_submission(item_id, **kwargs)


class TestBatchUploadProgress:
    def _batch(self, *progress):
        return BatchUpload(
            id="batch_1",
            assessment_id=7,
            files=[
                UploadFileEntry(file_index=i, file_name=f"f{i}.png", progress=p)
                for i, p in enumerate(progress)
            ],
            started_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )

    def test_mean_progress_rounds_half_up(self):
        assert self._batch(50, 0, 0, 0).progress == 13
        assert self._batch(100, 100, 0).progress == 67

    def test_empty_batch_has_zero_progress(self):
        assert self._batch().progress == 0

    def test_progress_and_terminal_flag_are_serialized(self):
        batch = self._batch(100, 40)
        batch.files[0].status = "completed"

        data = batch.model_dump()

        assert data["progress"] == 70
        assert data["all_files_terminal"] is False
