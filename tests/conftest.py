"""
Shared test fixtures.
The grading backend is faked with httpx.MockTransport; no network calls.
"""
import re

import httpx
import pytest

from grading_progress.services.grading_client import GradingApiClient

BASE_URL = "http://grading.test/api"


def status_payload(submission_id, status="pending", percentage=None, **extra):
    payload = {"submission_id": submission_id, "status": status}
    if status == "completed":
        payload["grading_result"] = {
            "total_score": percentage or 0,
            "max_score": 100,
            "percentage": percentage,
            "feedback": "ok",
            "question_scores": [],
        }
    if status == "failed":
        payload["error_message"] = extra.pop("error_message", "OCR failed")
    payload.update(extra)
    return payload


def garbled_response():
    # gzip header on a body that is not gzip; decoding it fails
    return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"definitely not gzip")


class FakeGradingBackend:
    """Scriptable stand-in for the grading REST backend."""

    def __init__(self):
        # submission id -> list of payloads (dict), HTTP error codes (int), exceptions
        # or "garbled";
        # consumed one per call, the last entry repeats
        self.status_script = {}
        self.status_calls = []
        self.uploads = []
        self.failing_files = set()
        self.garbled_files = set()
        self.assessments = {}
        self.grading_items = []
        self.reports = []
        self.requests = []
        self._next_submission_id = 500

    def script(self, submission_id, *steps):
        self.status_script[submission_id] = list(steps)

    def _next_status(self, submission_id):
        steps = self.status_script.get(submission_id)
        if not steps:
            return 404
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        return step

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")

        match = re.fullmatch(r"/grading/submissions/(\d+)/status", path)
        if match:
            submission_id = int(match.group(1))
            self.status_calls.append(submission_id)
            step = self._next_status(submission_id)
            if isinstance(step, Exception):
                raise step
            if step == "garbled":
                return garbled_response()
            if isinstance(step, int):
                return httpx.Response(step, json={"detail": f"Submission {submission_id} not found"})
            return httpx.Response(200, json=step)

        match = re.fullmatch(r"/grading/(assessments|grading-items)/(\d+)/submissions", path)
        if match and request.method == "POST":
            body = request.content
            file_name = re.search(rb'filename="([^"]+)"', body).group(1).decode()
            student_id = re.search(rb'name="student_id"\r\n\r\n(\d+)', body).group(1).decode()
            source_type = re.search(rb'name="source_type"\r\n\r\n([a-z_]+)', body)
            self.uploads.append({
                "kind": match.group(1),
                "item_id": int(match.group(2)),
                "file_name": file_name,
                "student_id": int(student_id),
                "source_type": source_type.group(1).decode() if source_type else None,
                "content_type": request.headers["content-type"],
            })
            if file_name in self.garbled_files:
                return garbled_response()
            if file_name in self.failing_files:
                return httpx.Response(500, json={"detail": f"Could not store {file_name}"})
            self._next_submission_id += 1
            return httpx.Response(
                200,
                json={"submission_id": self._next_submission_id, "message": "queued", "status": "pending"},
            )

        if match and request.method == "GET":
            assessment = self.assessments.get(int(match.group(2)))
            if assessment is None:
                return httpx.Response(404, json={"detail": "Assessment not found"})
            return httpx.Response(200, json=assessment["submissions"])

        match = re.fullmatch(r"/grading/assessments/(\d+)/stats", path)
        if match:
            assessment_id = int(match.group(1))
            return httpx.Response(200, json={"assessment_id": assessment_id, "total_submissions": 3})

        match = re.fullmatch(r"/grading/assessments/(\d+)", path)
        if match:
            assessment = self.assessments.get(int(match.group(1)))
            if assessment is None:
                return httpx.Response(404, json={"detail": "Assessment not found"})
            return httpx.Response(200, json=assessment)

        if path == "/grading/grading-items":
            item_type = request.url.params.get("item_type")
            items = [i for i in self.grading_items if item_type in (None, i["source_type"])]
            skip = int(request.url.params.get("skip", 0))
            limit = int(request.url.params.get("limit", 100))
            return httpx.Response(200, json={
                "items": items[skip:skip + limit],
                "total": len(items),
                "manual_assessments_count": sum(1 for i in items if i["source_type"] == "manual_assessment"),
                "ai_exams_count": sum(1 for i in items if i["source_type"] == "ai_exam"),
            })

        if path == "/reports/history/list":
            return httpx.Response(200, json={
                "reports": self.reports,
                "total_count": len(self.reports),
                "page": int(request.url.params.get("page", 1)),
                "page_size": int(request.url.params.get("page_size", 10)),
            })

        return httpx.Response(404, json={"detail": "Not Found"})


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def backend():
    return FakeGradingBackend()


@pytest.fixture
def grading_client(backend):
    return GradingApiClient(
        BASE_URL,
        token="test-token",
        transport=httpx.MockTransport(backend.handler),
        chunk_size=256,
    )


@pytest.fixture
def sample_assessment():
    def _submission(sid, student, status, percentage=None, student_id=None):
        data = {
            "id": sid,
            "assessment_id": 7,
            "student_id": student_id or sid,
            "status": status,
            "student_name": student,
        }
        if percentage is not None or status == "completed":
            data["grading_result"] = {
                "total_score": percentage or 0,
                "max_score": 100,
                "percentage": percentage,
                "feedback": "",
                "question_scores": [],
            }
        return data

    return {
        "id": 7,
        "title": "Fractions quiz",
        "answer_key": "1/2, 3/4",
        "max_score": 100,
        "teacher_id": 1,
        "status": "active",
        "submissions": [
            _submission(1, "Alice Johnson", "completed", 95),
            _submission(2, "Ben Carter", "completed", 82),
            _submission(3, "Chloe Diaz", "completed", 55),
            _submission(4, "Dev Patel", "processing"),
        ],
    }
