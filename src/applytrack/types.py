from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, get_args
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

ApplicationStatus = Literal["Yet to Apply", "Applied", "OA", "Interview", "Offer", "Rejected"]
ApplicationCategory = Literal["SWE", "SRE/Devops", "Quant", "Systems", "Data Scientist"]
ApplicationType = Literal["Internship", "Full-Time"]
WorkArrangement = Literal["On-site", "Remote", "Hybrid"]
FailureStage = Literal["validation", "resolution", "gateway", "persistence"]

STATUSES: tuple[str, ...] = get_args(ApplicationStatus)
CATEGORIES: tuple[str, ...] = get_args(ApplicationCategory)
APPLICATION_TYPES: tuple[str, ...] = get_args(ApplicationType)
WORK_ARRANGEMENTS: tuple[str, ...] = get_args(WorkArrangement)

INITIAL_STATUS: ApplicationStatus = "Yet to Apply"
ALL_USERS = "all"
MAX_INTERVIEW_ROUNDS = 10

EMPTY_RESUME_SUMMARY = "No resume content was provided, so the resume could not be scored."
EMPTY_JOB_DESCRIPTION_SUMMARY = "No job description was provided, so the resume could not be scored."


def is_valid_url(value: str) -> bool:
    if not value or any(char.isspace() for char in value):
        return False
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"}:
        return False
    host = parsed.hostname or ""
    return host == "localhost" or "." in host.strip(".")


class ApplicationCandidate(BaseModel):
    """A validated application record that has not been assigned to users yet."""

    company_name: str
    job_title: str
    locations: list[str]
    job_url: str
    type: ApplicationType
    category: ApplicationCategory
    status: ApplicationStatus = INITIAL_STATUS
    work_arrangement: WorkArrangement | None = None
    job_description: str | None = None
    notes: str | None = None
    user_id: str = ALL_USERS
    is_us_citizen_only: bool = False


class ApplicationIntent(BaseModel):
    """One row to insert: a candidate bound to a single user and location."""

    user_id: str
    company_name: str
    job_title: str
    location: str
    job_url: str
    type: ApplicationType
    category: ApplicationCategory
    status: ApplicationStatus
    work_arrangement: WorkArrangement | None = None
    job_description: str | None = None
    notes: str | None = None
    is_us_citizen_only: bool = False


class RowFailure(BaseModel):
    index: int
    identifier: str
    stage: FailureStage
    reason: str
    fields: list[str] = Field(default_factory=list)


class IngestionSummary(BaseModel):
    total: int = 0
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    created: int = 0
    failures: list[RowFailure] = Field(default_factory=list)


class InterviewSlot(BaseModel):
    at: datetime
    timezone: str = ""


class FetchJobDescriptionInput(BaseModel):
    url: str


class JobDescription(BaseModel):
    description: str = ""
    company_name: str = ""
    job_title: str = ""
    location: str = ""
    type: str = ""
    category: str = ""
    work_arrangement: str = ""
    is_us_citizen_only: bool = False


class ExtractResumeTextInput(BaseModel):
    resume_data_uri: str

    @field_validator("resume_data_uri")
    @classmethod
    def validate_data_uri(cls, value: str) -> str:
        if not value.startswith("data:application/pdf;base64,"):
            raise ValueError("resume_data_uri must be a base64 PDF data URI")
        return value


class ExtractResumeTextOutput(BaseModel):
    resume_text: str


class ScoreResumeInput(BaseModel):
    resume_text: str = ""
    latex_content: str = ""
    job_description: str = ""

    @property
    def resume_content(self) -> str:
        if self.resume_text.strip():
            return self.resume_text
        return self.latex_content


class ScoreResumeOutput(BaseModel):
    score: int = Field(ge=0, le=100)
    summary: str


class ExtractKeywordsInput(BaseModel):
    job_description: str = ""


class ExtractKeywordsOutput(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    suggestions: str = ""


class ModelResponse(BaseModel):
    content: str
    raw: dict[str, Any] = Field(default_factory=dict)
