from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from applytrack.types import ALL_USERS, INITIAL_STATUS, ApplicationStatus, InterviewSlot


class UserCreateRequest(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = ""
    emails: list[str] = Field(min_length=1)
    default_email: str | None = None
    password: str = ""


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    email_addresses: list[str]
    default_email: str
    avatar_url: str | None = None


class ApplicationCreateRequest(BaseModel):
    company_name: str = ""
    job_title: str = ""
    locations: list[str] = Field(default_factory=list)
    job_url: str = ""
    job_description: str | None = None
    type: str = ""
    category: str = ""
    work_arrangement: str | None = None
    status: str = INITIAL_STATUS
    user_id: str = ALL_USERS
    notes: str | None = None


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    user_id: str
    company_name: str
    job_title: str
    location: str
    job_url: str
    job_description: str | None = None
    keywords: list[str] = Field(default_factory=list, validation_alias="keywords_json")
    suggestions: str | None = None
    type: str
    category: str
    work_arrangement: str | None = None
    status: str
    notes: str | None = None
    resume_id: str | None = None
    applied_on: datetime | None = None
    oa_due_date: datetime | None = None
    oa_due_date_timezone: str | None = None
    oa_completed_on: datetime | None = None
    oa_skipped: bool = False
    is_us_citizen_only: bool = False
    interview_dates: list[dict[str, Any]] = Field(default_factory=list, validation_alias="interview_dates_json")
    created_at: datetime


class ApplicationUpdateRequest(BaseModel):
    company_name: str | None = None
    job_title: str | None = None
    location: str | None = None
    job_url: str | None = None
    job_description: str | None = None
    type: str | None = None
    category: str | None = None
    work_arrangement: str | None = None
    status: ApplicationStatus | None = None
    notes: str | None = None
    resume_id: str | None = None
    oa_due_date: datetime | None = None
    oa_due_date_timezone: str | None = None
    oa_completed_on: datetime | None = None
    oa_skipped: bool | None = None
    is_us_citizen_only: bool | None = None
    interview_dates: list[InterviewSlot] | None = None

    def to_values(self) -> dict[str, Any]:
        values = self.model_dump(exclude_unset=True, exclude={"interview_dates"})
        if "interview_dates" in self.model_fields_set:
            values["interview_dates_json"] = [slot.model_dump(mode="json") for slot in self.interview_dates or []]
        return values


class StatusUpdateRequest(BaseModel):
    status: ApplicationStatus


class BulkUrlRequest(BaseModel):
    urls: list[str]
    user_id: str = ALL_USERS


class ResumeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    resume_text: str | None = None
    latex_content: str | None = None
    pdf_url: str | None = None
    created_at: datetime
    application_count: int = 0


class LatexResumeRequest(BaseModel):
    user_id: str
    name: str = Field(min_length=1)
    latex_content: str


class LatexCompileRequest(BaseModel):
    latex_content: str


class ScoreRequest(BaseModel):
    resume_id: str


class ScoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    application_id: str
    resume_id: str
    score: int
    summary: str
    created_at: datetime


class KeywordsResponse(BaseModel):
    application_id: str
    keywords: list[str]
    suggestions: str
