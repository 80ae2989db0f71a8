# grading_progress/schemas/score.py
from pydantic import BaseModel


class ScoreBucket(BaseModel):
    range: str
    min_score: float
    max_score: float
    count: int = 0
    percentage: float = 0.0  # of graded submissions
    students: list[str] = []  # first few names only, for display


class ScoreAnalytics(BaseModel):
    total_submissions: int = 0
    graded_submissions: int = 0
    average_score: float = 0.0
    median_score: float = 0.0
    standard_deviation: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    pass_rate: float = 0.0
    completion_rate: float = 0.0
    score_distribution: list[ScoreBucket] = []
