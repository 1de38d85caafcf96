"""Sponsored tasks and the task marketplace."""

from .models import (
    CampaignCreate,
    ProofType,
    QuizConfig,
    SubmissionCreate,
    SubmissionReview,
    TaskCategory,
    TaskFrequency,
)
from .service import (
    claim_task,
    create_campaign,
    list_campaigns,
    list_tasks,
    review_submission,
    submit_proof,
)

__all__ = [
    "CampaignCreate",
    "ProofType",
    "QuizConfig",
    "SubmissionCreate",
    "SubmissionReview",
    "TaskCategory",
    "TaskFrequency",
    "claim_task",
    "create_campaign",
    "list_campaigns",
    "list_tasks",
    "review_submission",
    "submit_proof",
]
