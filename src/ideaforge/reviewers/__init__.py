"""レビュアー"""

from .pool import ReviewerPool, degraded_review, normalize_output
from .registry import (
    REVIEWER_DESCRIPTIONS,
    REVIEWER_IDS,
    SUCCESS_REVIEWER_ID,
    HeuristicReviewer,
    Reviewer,
    ReviewOutput,
)

__all__ = [
    "ReviewerPool",
    "degraded_review",
    "normalize_output",
    "REVIEWER_DESCRIPTIONS",
    "REVIEWER_IDS",
    "SUCCESS_REVIEWER_ID",
    "HeuristicReviewer",
    "Reviewer",
    "ReviewOutput",
]
