from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="applytrack-tests-"))
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'applytrack.db'}"
os.environ["DATA_DIR"] = str(_TEST_ROOT)
os.environ["UPLOAD_DIR"] = str(_TEST_ROOT / "uploads")
os.environ["FILE_STORE_BACKEND"] = "local"
os.environ["OPENAI_API_KEY"] = "test-key"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from applytrack.api.app import create_app  # noqa: E402
from applytrack.config import get_settings  # noqa: E402
from applytrack.core.runtime import Services, build_services  # noqa: E402
from applytrack.db.base import Base  # noqa: E402
from applytrack.db.session import SessionLocal, engine  # noqa: E402
from applytrack.types import ExtractKeywordsOutput, JobDescription, ScoreResumeOutput  # noqa: E402


class FakeGateway:
    """Stands in for AIGateway; unknown URLs get a generic description."""

    def __init__(self) -> None:
        self.descriptions: dict[str, JobDescription | Exception] = {}
        self.fetched: list[str] = []
        self.resume_text = "Python engineer with five years of API work"
        self.score = ScoreResumeOutput(score=77, summary="Strong **Python** overlap")
        self.keywords = ExtractKeywordsOutput(keywords=["Python", "FastAPI"], suggestions="Mention **FastAPI**")

    def fetch_job_description(self, url: str) -> JobDescription:
        self.fetched.append(url)
        result = self.descriptions.get(url)
        if isinstance(result, Exception):
            raise result
        return result or JobDescription(
            description="Build APIs in Python.",
            company_name="Acme",
            job_title="Backend Engineer",
            location="Remote",
            type="Full-Time",
            category="SWE",
            work_arrangement="Remote",
        )

    def extract_resume_text(self, resume_data_uri: str) -> str:
        return self.resume_text

    def score_resume(self, *, job_description: str, resume_text: str = "", latex_content: str = "") -> ScoreResumeOutput:
        return self.score

    def extract_keywords(self, job_description: str) -> ExtractKeywordsOutput:
        return self.keywords


class FakeFileStore:
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.deleted: list[str] = []

    def upload(self, file_bytes: bytes, *, filename: str, mime_type: str, owner_name: str, company_name: str = "") -> str:
        url = f"https://drive.google.com/file/d/fake{len(self.files) + 1}/view"
        self.files[url] = file_bytes
        return url

    def delete_by_url(self, url: str) -> None:
        self.deleted.append(url)
        self.files.pop(url, None)


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_file_store() -> FakeFileStore:
    return FakeFileStore()


@pytest.fixture
def services(fake_gateway: FakeGateway, fake_file_store: FakeFileStore) -> Services:
    return build_services(get_settings(), SessionLocal, gateway=fake_gateway, file_store=fake_file_store)


@pytest.fixture
def client(services: Services) -> TestClient:
    return TestClient(create_app(services=services))
