# grading_progress/services/score_analytics.py
import math
import statistics
from typing import Iterable, Optional

from grading_progress.core.config import settings
from grading_progress.schemas.score import ScoreAnalytics, ScoreBucket
from grading_progress.schemas.submission import Submission

# (label, lower bound, upper bound) from best to worst
SCORE_RANGES = (
    ("90-100%", 90, 100),
    ("80-89%", 80, 89),
    ("70-79%", 70, 79),
    ("60-69%", 60, 69),
    ("0-59%", 0, 59),
)


def _valid_percentage(submission: Submission) -> Optional[float]:
    result = submission.grading_result
    if result is None or result.percentage is None:
        return None
    if not math.isfinite(result.percentage):
        return None
    return float(result.percentage)


def _bucket_index(score: float) -> int:
    # threshold cascade: 89.5 lands in 80-89, 104 in 90-100, -3 in 0-59
    for index, (_, lower, _) in enumerate(SCORE_RANGES[:-1]):
        if score >= lower:
            return index
    return len(SCORE_RANGES) - 1


def _student_label(submission: Submission) -> str:
    return submission.student_name or f"Student {submission.student_id}"


def analyze_scores(
    submissions: Iterable[Submission],
    *,
    pass_threshold: Optional[float] = None,
    sample_size: Optional[int] = None,
) -> ScoreAnalytics:
    """
    Summary statistics and a five bucket histogram over graded submissions.

    Only submissions whose grading result has a finite percentage count as
    graded; missing or NaN percentages are excluded rather than read as 0.
    Every figure is 0 when nothing is graded.
    """
    pass_threshold = settings.PASS_THRESHOLD if pass_threshold is None else pass_threshold
    sample_size = settings.DISTRIBUTION_SAMPLE_SIZE if sample_size is None else sample_size

    submissions = list(submissions)
    graded = [(s, pct) for s in submissions if (pct := _valid_percentage(s)) is not None]
    scores = [pct for _, pct in graded]

    total = len(submissions)
    graded_count = len(scores)

    buckets = [
        ScoreBucket(range=label, min_score=lower, max_score=upper)
        for label, lower, upper in SCORE_RANGES
    ]
    for submission, score in graded:
        bucket = buckets[_bucket_index(score)]
        bucket.count += 1
        if len(bucket.students) < sample_size:
            bucket.students.append(_student_label(submission))
    for bucket in buckets:
        bucket.percentage = bucket.count / graded_count * 100 if graded_count else 0.0

    if not scores:
        return ScoreAnalytics(
            total_submissions=total,
            graded_submissions=0,
            completion_rate=0.0,
            score_distribution=buckets,
        )

    passed = sum(1 for score in scores if score >= pass_threshold)
    return ScoreAnalytics(
        total_submissions=total,
        graded_submissions=graded_count,
        average_score=statistics.fmean(scores),
        median_score=statistics.median(scores),
        standard_deviation=statistics.pstdev(scores),
        highest_score=max(scores),
        lowest_score=min(scores),
        pass_rate=passed / graded_count * 100,
        completion_rate=graded_count / total * 100,
        score_distribution=buckets,
    )
