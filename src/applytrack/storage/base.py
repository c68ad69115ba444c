from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Protocol


class FileStore(Protocol):
    def upload(
        self,
        file_bytes: bytes,
        *,
        filename: str,
        mime_type: str,
        owner_name: str,
        company_name: str = "",
    ) -> str: ...

    def delete_by_url(self, url: str) -> None: ...


_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")


def stored_filename(owner_name: str, company_name: str, filename: str) -> str:
    """``First-Last_Company_resume.pdf`` with anything unsafe replaced by ``_``.

    Only the last path component of ``filename`` is kept.
    """
    owner = "-".join(owner_name.split())
    prefix = _UNSAFE_CHARS.sub("_", f"{owner}_{company_name}" if company_name else owner)
    name = PurePosixPath(filename.replace("\\", "/")).name.strip(".")
    stem, dot, extension = name.rpartition(".")
    if not stem:
        stem, dot, extension = name, "", ""
    stem = _UNSAFE_CHARS.sub("_", stem) or "file"
    extension = _UNSAFE_CHARS.sub("_", extension)
    return f"{prefix}_{stem}{dot}{extension}"
