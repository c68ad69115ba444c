from __future__ import annotations

import hashlib
import hmac
import os
from collections.abc import Iterable
from typing import Any

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session

from applytrack.db.base import utcnow
from applytrack.db.models import Application, ApplicationResumeScore, Resume, User
from applytrack.types import (
    APPLICATION_TYPES,
    CATEGORIES,
    INITIAL_STATUS,
    MAX_INTERVIEW_ROUNDS,
    STATUSES,
    WORK_ARRANGEMENTS,
    ApplicationIntent,
    is_valid_url,
)

_PBKDF2_ROUNDS = 240_000

EDITABLE_APPLICATION_FIELDS = {
    "company_name",
    "job_title",
    "location",
    "job_url",
    "job_description",
    "keywords_json",
    "suggestions",
    "type",
    "category",
    "work_arrangement",
    "status",
    "notes",
    "resume_id",
    "applied_on",
    "oa_due_date",
    "oa_due_date_timezone",
    "oa_completed_on",
    "oa_skipped",
    "is_us_citizen_only",
    "interview_dates_json",
}


REQUIRED_APPLICATION_FIELDS = {
    "company_name",
    "job_title",
    "location",
    "job_url",
    "type",
    "category",
    "status",
    "keywords_json",
    "oa_skipped",
    "is_us_citizen_only",
    "interview_dates_json",
}
REQUIRED_TEXT_FIELDS = ("company_name", "job_title", "location", "job_url")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_password(password: str, *, salt: bytes | None = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ROUNDS)
    return f"pbkdf2_sha256${_PBKDF2_ROUNDS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        _, rounds, salt_hex, digest_hex = encoded.split("$")
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), int(rounds))
    return hmac.compare_digest(digest.hex(), digest_hex)


class Repository:
    def __init__(self, session: Session):
        self.session = session

    # users

    def create_user(
        self,
        *,
        first_name: str,
        last_name: str,
        emails: Iterable[str],
        default_email: str | None = None,
        password: str = "",
        avatar_url: str | None = None,
    ) -> User:
        addresses: list[str] = []
        for email in emails:
            normalized = normalize_email(email)
            if normalized and normalized not in addresses:
                addresses.append(normalized)
        if not addresses:
            raise ValueError("a user needs at least one email address")

        default = normalize_email(default_email) if default_email else addresses[0]
        if default not in addresses:
            raise ValueError("default email must be one of the user's email addresses")
        for address in addresses:
            if self.find_user_by_email(address):
                raise ValueError(f"a user with email {address} already exists")

        user = User(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email_addresses=addresses,
            default_email=default,
            password_hash=hash_password(password) if password else "",
            avatar_url=avatar_url,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_user(self, user_id: str) -> User | None:
        return self.session.get(User, user_id)

    def find_user_by_email(self, email: str) -> User | None:
        """Match against every address a user owns, not only the default one."""
        normalized = normalize_email(email)
        for user in self.session.scalars(select(User)).all():
            if normalized in (user.email_addresses or []):
                return user
        return None

    def list_users(self) -> list[User]:
        return list(self.session.scalars(select(User).order_by(User.first_name, User.last_name)).all())

    def delete_user(self, user_id: str) -> None:
        user = self.session.get(User, user_id)
        if not user:
            raise ValueError(f"user {user_id} not found")
        self.session.delete(user)
        self.session.commit()

    # applications

    def create_applications(self, intents: Iterable[ApplicationIntent]) -> list[Application]:
        """Insert every intent in a single transaction."""
        now = utcnow()
        rows: list[Application] = []
        for intent in intents:
            values = intent.model_dump()
            row = Application(
                **values,
                keywords_json=[],
                interview_dates_json=[],
                applied_on=now if intent.status != INITIAL_STATUS else None,
            )
            self.session.add(row)
            rows.append(row)

        self.session.commit()
        for row in rows:
            self.session.refresh(row)
        return rows

    def get_application(self, application_id: str) -> Application | None:
        return self.session.get(Application, application_id)

    def list_applications(
        self,
        *,
        user_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[Application]:
        statement = select(Application)
        conditions = []
        if user_id:
            conditions.append(Application.user_id == user_id)
        if status:
            conditions.append(Application.status == status)
        if conditions:
            statement = statement.where(and_(*conditions))
        statement = statement.order_by(Application.created_at.desc())
        if limit:
            statement = statement.limit(limit)
        return list(self.session.scalars(statement).all())

    def update_application(self, application_id: str, values: dict[str, Any]) -> Application:
        application = self.session.get(Application, application_id)
        if not application:
            raise ValueError(f"application {application_id} not found")

        unknown = set(values) - EDITABLE_APPLICATION_FIELDS
        if unknown:
            raise ValueError(f"fields cannot be updated: {', '.join(sorted(unknown))}")

        values = dict(values)
        for field_name in sorted(REQUIRED_APPLICATION_FIELDS & set(values)):
            if values[field_name] is None:
                raise ValueError(f"{field_name} cannot be null")
        for field_name in REQUIRED_TEXT_FIELDS:
            if field_name not in values:
                continue
            values[field_name] = str(values[field_name]).strip()
            if not values[field_name]:
                raise ValueError(f"{field_name} cannot be empty")
        if "job_url" in values and not is_valid_url(values["job_url"]):
            raise ValueError("job_url is not a valid URL")

        status = values.get("status")
        if status is not None and status not in STATUSES:
            raise ValueError(f"unknown status '{status}'")
        for field_name, allowed in (
            ("type", APPLICATION_TYPES),
            ("category", CATEGORIES),
            ("work_arrangement", WORK_ARRANGEMENTS),
        ):
            value = values.get(field_name)
            if value is not None and value not in allowed:
                raise ValueError(f"unknown {field_name} '{value}'")

        interviews = values.get("interview_dates_json")
        if interviews is not None and len(interviews) > MAX_INTERVIEW_ROUNDS:
            raise ValueError(f"at most {MAX_INTERVIEW_ROUNDS} interview dates are tracked")

        resume_id = values.get("resume_id")
        if resume_id and not self.session.get(Resume, resume_id):
            raise ValueError(f"resume {resume_id} not found")

        for key, value in values.items():
            setattr(application, key, value)
        if status and status != INITIAL_STATUS and application.applied_on is None:
            application.applied_on = utcnow()

        self.session.commit()
        self.session.refresh(application)
        return application

    def update_application_status(self, application_id: str, status: str) -> Application:
        return self.update_application(application_id, {"status": status})

    def delete_application(self, application_id: str) -> None:
        application = self.session.get(Application, application_id)
        if not application:
            raise ValueError(f"application {application_id} not found")
        self.session.delete(application)
        self.session.commit()

    def count_applications_by_status(self, user_id: str | None = None) -> dict[str, int]:
        statement = select(Application.status, func.count(Application.id)).group_by(Application.status)
        if user_id:
            statement = statement.where(Application.user_id == user_id)
        counts = {status: 0 for status in STATUSES}
        for status, count in self.session.execute(statement).all():
            counts[status] = count
        return counts

    # resumes

    def create_resume(
        self,
        *,
        user_id: str,
        name: str,
        resume_text: str | None = None,
        latex_content: str | None = None,
        pdf_url: str | None = None,
    ) -> Resume:
        if not self.session.get(User, user_id):
            raise ValueError(f"user {user_id} not found")
        _require_resume_content(resume_text, latex_content)

        resume = Resume(
            user_id=user_id,
            name=name.strip(),
            resume_text=resume_text,
            latex_content=latex_content,
            pdf_url=pdf_url,
        )
        self.session.add(resume)
        self.session.commit()
        self.session.refresh(resume)
        return resume

    def update_resume(self, resume_id: str, **values: Any) -> Resume:
        resume = self.session.get(Resume, resume_id)
        if not resume:
            raise ValueError(f"resume {resume_id} not found")

        allowed = {"name", "resume_text", "latex_content", "pdf_url"}
        unknown = set(values) - allowed
        if unknown:
            raise ValueError(f"fields cannot be updated: {', '.join(sorted(unknown))}")

        _require_resume_content(
            values.get("resume_text", resume.resume_text),
            values.get("latex_content", resume.latex_content),
        )
        for key, value in values.items():
            setattr(resume, key, value)

        self.session.commit()
        self.session.refresh(resume)
        return resume

    def get_resume(self, resume_id: str) -> Resume | None:
        return self.session.get(Resume, resume_id)

    def list_resumes(self, user_id: str) -> list[dict[str, Any]]:
        statement = (
            select(Resume, func.count(Application.id))
            .outerjoin(Application, Application.resume_id == Resume.id)
            .where(Resume.user_id == user_id)
            .group_by(Resume.id)
            .order_by(Resume.created_at.desc())
        )
        return [
            {"resume": resume, "application_count": count}
            for resume, count in self.session.execute(statement).all()
        ]

    def delete_resume(self, resume_id: str) -> str | None:
        """Delete a resume, detaching it from applications. Returns the stored PDF URL."""
        resume = self.session.get(Resume, resume_id)
        if not resume:
            raise ValueError(f"resume {resume_id} not found")

        pdf_url = resume.pdf_url
        self.session.execute(
            update(Application).where(Application.resume_id == resume_id).values(resume_id=None)
        )
        self.session.delete(resume)
        self.session.commit()
        return pdf_url

    # scores

    def record_resume_score(
        self,
        *,
        application_id: str,
        resume_id: str,
        score: int,
        summary: str,
    ) -> ApplicationResumeScore:
        item = ApplicationResumeScore(
            application_id=application_id,
            resume_id=resume_id,
            score=score,
            summary=summary,
        )
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def list_resume_scores(self, application_id: str) -> list[ApplicationResumeScore]:
        statement = (
            select(ApplicationResumeScore)
            .where(ApplicationResumeScore.application_id == application_id)
            .order_by(ApplicationResumeScore.created_at.desc())
        )
        return list(self.session.scalars(statement).all())


def _require_resume_content(resume_text: str | None, latex_content: str | None) -> None:
    if not (resume_text or "").strip() and not (latex_content or "").strip():
        raise ValueError("a resume needs extracted text or LaTeX source")

