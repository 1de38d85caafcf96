"""Request models and constants for sponsored and marketplace tasks."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, HttpUrl


class TaskFrequency(str, Enum):
    ONCE = "once"
    DAILY = "daily"


class ProofType(str, Enum):
    SCREENSHOT = "screenshot"
    QUIZ = "ai_quiz"
    FILE = "file_check"
    TEXT = "text_input"


class TaskCategory(str, Enum):
    SOCIAL = "social"
    VIDEO = "video"
    YOUTUBE = "youtube"
    APP = "app"
    WEBSITE = "website"
    SURVEY = "survey"
    REVIEW = "review"
    SEO = "seo"
    CONTENT = "content"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class QuizConfig(BaseModel):
    question: str = Field(..., min_length=3)
    options: list[str] = Field(..., min_length=2, max_length=6)
    correct_index: int = Field(..., ge=0)


class CampaignCreate(BaseModel):
    """A creator-funded marketplace campaign."""

    title: str = Field(..., min_length=3, max_length=120)
    description: str | None = None
    category: TaskCategory = TaskCategory.SOCIAL
    target_url: HttpUrl
    quantity: int = Field(..., ge=1, le=100000)
    price_per_action: Decimal = Field(..., gt=0)
    proof_type: ProofType = ProofType.SCREENSHOT
    timer_seconds: int = Field(30, ge=0, le=3600)
    reference_image_url: str | None = None
    quiz: QuizConfig | None = None
    expected_file_name: str | None = None


class SubmissionCreate(BaseModel):
    """A worker's proof for a marketplace task."""

    screenshot_url: str | None = None
    quiz_answer: int | None = None
    file_name: str | None = None
    text: str | None = Field(None, max_length=2000)


class SubmissionReview(BaseModel):
    approve: bool
    note: str | None = None
