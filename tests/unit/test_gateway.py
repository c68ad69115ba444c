from __future__ import annotations

from types import SimpleNamespace

import pytest

from applytrack.errors import GatewayError
from applytrack.llm.gateway import AIGateway
from applytrack.llm.providers import GatewayConfig, ProviderConfig
from applytrack.types import EMPTY_JOB_DESCRIPTION_SUMMARY, EMPTY_RESUME_SUMMARY, JobDescription


class FakeProvider:
    def __init__(self, payload: dict | None = None, text: str = "", error: Exception | None = None):
        self.config = ProviderConfig(name="fake", base_url="http://fake/v1", api_key="", timeout_sec=5)
        self.payload = payload or {}
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    def complete_json(self, *, model: str, prompt: str, attachments=None) -> dict:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.payload

    def complete_text(self, *, model: str, prompt: str, attachments=None):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return SimpleNamespace(content=self.text)


def _gateway(provider: FakeProvider | None = None, page: str = "Senior Engineer\nPython") -> AIGateway:
    gateway = AIGateway(GatewayConfig(), page_fetcher=lambda url, timeout_sec=30: page)
    if provider is not None:
        gateway.pool.ordered = lambda primary: [provider]
    return gateway


def _no_calls(**kwargs):
    raise AssertionError("the model must not be called")


@pytest.mark.parametrize("description", ["", "   \n\t"])
def test_blank_job_description_yields_no_keywords_without_a_call(description: str) -> None:
    gateway = _gateway()
    gateway._call_json = _no_calls

    result = gateway.extract_keywords(description)

    assert result.keywords == []
    assert result.suggestions == ""


def test_empty_resume_scores_zero_without_a_call() -> None:
    gateway = _gateway()
    gateway._call_json = _no_calls

    result = gateway.score_resume(job_description="Build APIs", resume_text="  ", latex_content="")

    assert result.score == 0
    assert result.summary == EMPTY_RESUME_SUMMARY


def test_empty_job_description_scores_zero_without_a_call() -> None:
    gateway = _gateway()
    gateway._call_json = _no_calls

    result = gateway.score_resume(job_description="", resume_text="Python developer")

    assert result.score == 0
    assert result.summary == EMPTY_JOB_DESCRIPTION_SUMMARY


def test_latex_is_scored_when_there_is_no_resume_text() -> None:
    provider = FakeProvider(payload={"score": 82.6, "summary": "Good fit"})
    result = _gateway(provider).score_resume(
        job_description="Build APIs",
        resume_text="",
        latex_content="\\section{Experience} Python",
    )

    assert result.score == 83
    assert "\\section{Experience}" in provider.prompts[0]


def test_out_of_range_score_is_rejected() -> None:
    provider = FakeProvider(payload={"score": 140, "summary": "Too good"})
    with pytest.raises(GatewayError, match="malformed"):
        _gateway(provider).score_resume(job_description="Build APIs", resume_text="Python")


def test_blank_job_page_returns_empty_description_without_a_call() -> None:
    gateway = _gateway(page="  ")
    gateway._call_json = _no_calls

    assert gateway.fetch_job_description("https://acme.com/jobs/1") == JobDescription()


def test_job_description_is_validated() -> None:
    provider = FakeProvider(
        payload={
            "description": "Build APIs",
            "company_name": "Acme",
            "job_title": "Backend Engineer",
            "location": "Remote",
            "type": "Full-Time",
            "category": "SWE",
            "work_arrangement": "Remote",
            "is_us_citizen_only": False,
        }
    )
    result = _gateway(provider).fetch_job_description("https://acme.com/jobs/1")

    assert result.company_name == "Acme"
    assert "https://acme.com/jobs/1" in provider.prompts[0]


def test_provider_failure_becomes_gateway_error() -> None:
    provider = FakeProvider(error=RuntimeError("rate limited"))
    with pytest.raises(GatewayError, match="rate limited"):
        _gateway(provider).extract_keywords("Build APIs in Go")


def test_no_enabled_provider_is_a_gateway_error() -> None:
    with pytest.raises(GatewayError, match="no LLM provider is enabled"):
        _gateway().extract_keywords("Build APIs in Go")


def test_resume_text_requires_pdf_data_uri() -> None:
    with pytest.raises(GatewayError, match="invalid resume input"):
        _gateway(FakeProvider(text="text")).extract_resume_text("data:text/plain;base64,aGk=")


def test_resume_text_must_not_be_empty() -> None:
    with pytest.raises(GatewayError, match="no text"):
        _gateway(FakeProvider(text="  ")).extract_resume_text("data:application/pdf;base64,JVBERi0=")
