# grading_progress/api/deps.py
from fastapi import Request

from grading_progress.core.state import GradingState


def get_grading_state(request: Request) -> GradingState:
    # built once in main.on_startup and kept for the life of the process
    return request.app.state.grading
