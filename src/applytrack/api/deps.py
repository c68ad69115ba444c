from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from applytrack.core.runtime import Services
from applytrack.db.session import get_db_session


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def get_services(request: Request) -> Services:
    return request.app.state.services
