from __future__ import annotations

import logging

from applytrack.db.models import Application, ApplicationResumeScore
from applytrack.db.repositories import Repository
from applytrack.llm.gateway import AIGateway

logger = logging.getLogger(__name__)


def score_application_resume(
    repo: Repository,
    gateway: AIGateway,
    *,
    application_id: str,
    resume_id: str,
) -> ApplicationResumeScore:
    application = repo.get_application(application_id)
    if not application:
        raise ValueError(f"application {application_id} not found")
    resume = repo.get_resume(resume_id)
    if not resume:
        raise ValueError(f"resume {resume_id} not found")

    result = gateway.score_resume(
        job_description=application.job_description or "",
        resume_text=resume.resume_text or "",
        latex_content=resume.latex_content or "",
    )
    logger.info("Scored resume=%s against application=%s: %d", resume_id, application_id, result.score)
    return repo.record_resume_score(
        application_id=application_id,
        resume_id=resume_id,
        score=result.score,
        summary=result.summary,
    )


def extract_application_keywords(repo: Repository, gateway: AIGateway, *, application_id: str) -> Application:
    application = repo.get_application(application_id)
    if not application:
        raise ValueError(f"application {application_id} not found")

    result = gateway.extract_keywords(application.job_description or "")
    return repo.update_application(
        application_id,
        {"keywords_json": result.keywords, "suggestions": result.suggestions},
    )
