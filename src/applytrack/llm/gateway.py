from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from applytrack.core.job_fetcher import fetch_job_text
from applytrack.errors import GatewayError
from applytrack.llm.prompts import (
    JOB_DESCRIPTION_PROMPT,
    KEYWORDS_PROMPT,
    RESUME_TEXT_PROMPT,
    SCORE_RESUME_PROMPT,
)
from applytrack.llm.providers import FileAttachment, GatewayConfig, ProviderPool
from applytrack.types import (
    APPLICATION_TYPES,
    CATEGORIES,
    EMPTY_JOB_DESCRIPTION_SUMMARY,
    EMPTY_RESUME_SUMMARY,
    WORK_ARRANGEMENTS,
    ExtractKeywordsInput,
    ExtractKeywordsOutput,
    ExtractResumeTextInput,
    ExtractResumeTextOutput,
    FetchJobDescriptionInput,
    JobDescription,
    ScoreResumeInput,
    ScoreResumeOutput,
)

logger = logging.getLogger(__name__)

PageFetcher = Callable[..., str]


class AIGateway:
    """Schema-validated calls to the generative-AI provider.

    Every public method either returns its validated output model or raises
    ``GatewayError``. Nothing is retried here; callers decide what a failure means.
    """

    def __init__(self, config: GatewayConfig, *, page_fetcher: PageFetcher = fetch_job_text):
        self.config = config
        self.pool = ProviderPool(config)
        self.page_fetcher = page_fetcher

    def fetch_job_description(self, url: str) -> JobDescription:
        payload = FetchJobDescriptionInput(url=url)
        job_text = self.page_fetcher(payload.url, timeout_sec=self.config.job_fetch_timeout_sec)
        if not job_text.strip():
            return JobDescription()

        prompt = JOB_DESCRIPTION_PROMPT.format(
            job_url=payload.url,
            job_text=job_text[:20000],
            types=", ".join(APPLICATION_TYPES),
            categories=", ".join(CATEGORIES),
            work_arrangements=", ".join(WORK_ARRANGEMENTS),
        )
        data = self._call_json(
            provider=self.config.extract_provider,
            task="extract",
            prompt=prompt,
        )
        return self._validate(JobDescription, data, operation="fetch_job_description")

    def extract_resume_text(self, resume_data_uri: str) -> str:
        try:
            payload = ExtractResumeTextInput(resume_data_uri=resume_data_uri)
        except ValidationError as exc:
            raise GatewayError(f"invalid resume input: {exc.errors()[0]['msg']}") from exc

        text = self._call_text(
            provider=self.config.extract_provider,
            task="extract",
            prompt=RESUME_TEXT_PROMPT,
            attachments=[FileAttachment(filename="resume.pdf", data_uri=payload.resume_data_uri)],
        )
        output = self._validate(ExtractResumeTextOutput, {"resume_text": text}, operation="extract_resume_text")
        if not output.resume_text.strip():
            raise GatewayError("extract_resume_text returned no text")
        return output.resume_text

    def score_resume(
        self,
        *,
        job_description: str,
        resume_text: str = "",
        latex_content: str = "",
    ) -> ScoreResumeOutput:
        payload = ScoreResumeInput(
            resume_text=resume_text or "",
            latex_content=latex_content or "",
            job_description=job_description or "",
        )
        if not payload.resume_content.strip():
            return ScoreResumeOutput(score=0, summary=EMPTY_RESUME_SUMMARY)
        if not payload.job_description.strip():
            return ScoreResumeOutput(score=0, summary=EMPTY_JOB_DESCRIPTION_SUMMARY)

        prompt = SCORE_RESUME_PROMPT.format(
            resume_content=payload.resume_content[:30000],
            job_description=payload.job_description[:20000],
        )
        data = self._call_json(
            provider=self.config.score_provider,
            task="score",
            prompt=prompt,
        )
        if isinstance(data.get("score"), float):
            data["score"] = round(data["score"])
        return self._validate(ScoreResumeOutput, data, operation="score_resume")

    def extract_keywords(self, job_description: str) -> ExtractKeywordsOutput:
        payload = ExtractKeywordsInput(job_description=job_description or "")
        if not payload.job_description.strip():
            return ExtractKeywordsOutput(keywords=[], suggestions="")

        prompt = KEYWORDS_PROMPT.format(job_description=payload.job_description[:20000])
        data = self._call_json(
            provider=self.config.extract_provider,
            task="extract",
            prompt=prompt,
        )
        return self._validate(ExtractKeywordsOutput, data, operation="extract_keywords")

    def _call_json(
        self,
        *,
        provider: str,
        task: str,
        prompt: str,
        attachments: list[FileAttachment] | None = None,
    ) -> dict[str, Any]:
        errors: list[str] = []
        for candidate in self.pool.ordered(provider):
            try:
                data = candidate.complete_json(
                    model=candidate.config.model_for(task),
                    prompt=prompt,
                    attachments=attachments,
                )
            except Exception as exc:
                logger.warning("LLM JSON call failed provider=%s error=%s", candidate.config.name, exc)
                errors.append(f"{candidate.config.name}: {exc}")
                continue
            if data:
                return data
            errors.append(f"{candidate.config.name}: empty or non-JSON output")
        raise GatewayError(_describe_failure(errors))

    def _call_text(
        self,
        *,
        provider: str,
        task: str,
        prompt: str,
        attachments: list[FileAttachment] | None = None,
    ) -> str:
        errors: list[str] = []
        for candidate in self.pool.ordered(provider):
            try:
                return candidate.complete_text(
                    model=candidate.config.model_for(task),
                    prompt=prompt,
                    attachments=attachments,
                ).content
            except Exception as exc:
                logger.warning("LLM text call failed provider=%s error=%s", candidate.config.name, exc)
                errors.append(f"{candidate.config.name}: {exc}")
        raise GatewayError(_describe_failure(errors))

    @staticmethod
    def _validate(model_cls, data: dict[str, Any], *, operation: str):
        try:
            return model_cls.model_validate(data)
        except ValidationError as exc:
            logger.warning("Invalid %s output: %s", operation, exc)
            raise GatewayError(f"{operation} returned malformed output") from exc


def _describe_failure(errors: list[str]) -> str:
    if not errors:
        return "no LLM provider is enabled"
    return "all LLM providers failed (" + "; ".join(errors) + ")"
