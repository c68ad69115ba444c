from __future__ import annotations

import base64
import logging

from sqlalchemy.orm import Session

from applytrack.core.latex import compile_latex
from applytrack.db.models import Resume
from applytrack.db.repositories import Repository
from applytrack.llm.gateway import AIGateway
from applytrack.storage.base import FileStore

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


def pdf_data_uri(pdf_bytes: bytes) -> str:
    return f"data:{PDF_MIME_TYPE};base64," + base64.b64encode(pdf_bytes).decode("ascii")


class ResumeService:
    def __init__(
        self,
        session: Session,
        *,
        gateway: AIGateway,
        file_store: FileStore,
        latex_compiler: str = "pdflatex",
        latex_timeout_sec: int = 60,
    ):
        self.repo = Repository(session)
        self.gateway = gateway
        self.file_store = file_store
        self.latex_compiler = latex_compiler
        self.latex_timeout_sec = latex_timeout_sec

    def upload_resume(
        self,
        *,
        user_id: str,
        name: str,
        pdf_bytes: bytes,
        filename: str = "resume.pdf",
        company_name: str = "",
    ) -> Resume:
        """Extract the text of an uploaded PDF, store the file and record the resume."""
        user = self.repo.get_user(user_id)
        if not user:
            raise ValueError(f"user {user_id} not found")
        if not pdf_bytes:
            raise ValueError("uploaded resume is empty")

        resume_text = self.gateway.extract_resume_text(pdf_data_uri(pdf_bytes))
        pdf_url = self.file_store.upload(
            pdf_bytes,
            filename=filename,
            mime_type=PDF_MIME_TYPE,
            owner_name=user.full_name,
            company_name=company_name,
        )
        try:
            return self.repo.create_resume(user_id=user_id, name=name, resume_text=resume_text, pdf_url=pdf_url)
        except Exception:
            logger.warning("Resume insert failed; removing uploaded file %s", pdf_url)
            self.repo.session.rollback()
            self.file_store.delete_by_url(pdf_url)
            raise

    def save_latex_resume(
        self,
        *,
        user_id: str,
        name: str,
        latex_content: str,
        resume_id: str | None = None,
    ) -> Resume:
        if not latex_content.strip():
            raise ValueError("LaTeX content cannot be empty")

        if resume_id is None:
            return self.repo.create_resume(user_id=user_id, name=name, latex_content=latex_content)

        resume = self.repo.get_resume(resume_id)
        if not resume or resume.user_id != user_id:
            raise ValueError(f"resume {resume_id} not found")
        return self.repo.update_resume(resume_id, name=name.strip(), latex_content=latex_content)

    def compile(self, latex_content: str) -> bytes:
        return compile_latex(latex_content, compiler=self.latex_compiler, timeout_sec=self.latex_timeout_sec)

    def delete_resume(self, resume_id: str) -> None:
        resume = self.repo.get_resume(resume_id)
        if not resume:
            raise ValueError(f"resume {resume_id} not found")
        # stored file goes first; the row survives a failed remote delete
        if resume.pdf_url:
            self.file_store.delete_by_url(resume.pdf_url)
        self.repo.delete_resume(resume_id)
