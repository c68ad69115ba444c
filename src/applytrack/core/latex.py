from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path

from applytrack.errors import LatexCompileError

logger = logging.getLogger(__name__)

_LOG_TAIL_LINES = 40


def compile_latex(source: str, *, compiler: str = "pdflatex", timeout_sec: int = 60) -> bytes:
    """Compile a standalone LaTeX document and return the PDF bytes."""
    if not source.strip():
        raise LatexCompileError("Cannot compile empty LaTeX content")

    with tempfile.TemporaryDirectory(prefix="applytrack-latex-") as workdir:
        tex_path = Path(workdir) / "resume.tex"
        tex_path.write_text(source, encoding="utf-8")

        # second pass resolves references and page counts
        for attempt in range(2):
            try:
                result = subprocess.run(
                    [compiler, "-interaction=nonstopmode", "-halt-on-error", tex_path.name],
                    cwd=workdir,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    timeout=timeout_sec,
                )
            except FileNotFoundError as exc:
                raise LatexCompileError(f"LaTeX compiler '{compiler}' is not installed") from exc
            except subprocess.TimeoutExpired as exc:
                raise LatexCompileError(f"LaTeX compilation timed out after {timeout_sec}s") from exc

            if result.returncode != 0:
                log_tail = _tail(result.stdout)
                logger.warning("%s pass %d failed with exit code %d", compiler, attempt + 1, result.returncode)
                raise LatexCompileError(_first_error(result.stdout) or "LaTeX compilation failed", log=log_tail)

        pdf_path = tex_path.with_suffix(".pdf")
        if not pdf_path.exists():
            raise LatexCompileError("LaTeX compilation finished but produced no PDF")
        return pdf_path.read_bytes()


def _tail(output: str) -> str:
    return "\n".join((output or "").splitlines()[-_LOG_TAIL_LINES:])


def _first_error(output: str) -> str:
    for line in (output or "").splitlines():
        if line.startswith("!"):
            return line.lstrip("! ").strip()
    return ""
