from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from applytrack.db.models import Application
from applytrack.db.repositories import Repository
from applytrack.errors import BatchFormatError, RowValidationError, UserResolutionError
from applytrack.llm.gateway import AIGateway
from applytrack.types import (
    ALL_USERS,
    APPLICATION_TYPES,
    CATEGORIES,
    INITIAL_STATUS,
    STATUSES,
    WORK_ARRANGEMENTS,
    ApplicationCandidate,
    ApplicationIntent,
    IngestionSummary,
    JobDescription,
    RowFailure,
    is_valid_url,
)

logger = logging.getLogger(__name__)

REQUIRED_CSV_HEADERS = ("companyName", "jobTitle", "location", "jobUrl", "type", "category")

PLACEHOLDER_TYPE = "Full-Time"
PLACEHOLDER_CATEGORY = "SWE"
PLACEHOLDER_LOCATION = "Unknown"
PLACEHOLDER_TITLE = "Untitled role"

LOCATION_SEPARATOR = ";"

_FIELD_ALIASES = {
    "companyName": "company_name",
    "jobTitle": "job_title",
    "location": "locations",
    "locations": "locations",
    "jobUrl": "job_url",
    "jobDescription": "job_description",
    "workArrangement": "work_arrangement",
    "userId": "user_id",
    "isUsCitizenOnly": "is_us_citizen_only",
}


# validation and normalization


def _clean(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value).strip()


def _canonical_row(raw: Mapping[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for key, value in raw.items():
        name = str(key).strip()
        row[_FIELD_ALIASES.get(name, name)] = value
    return row


def _split_locations(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        parts = [_clean(item) for item in value]
    else:
        parts = [_clean(item) for item in _clean(value).split(LOCATION_SEPARATOR)]

    locations: list[str] = []
    for part in parts:
        if part and part not in locations:
            locations.append(part)
    return locations


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return _clean(value).lower() in {"1", "true", "yes", "y"}


def normalize_filled_row(raw: Mapping[str, Any]) -> ApplicationCandidate:
    """Validate one filled-form row and return it trimmed and typed.

    Raises ``RowValidationError`` naming every missing or invalid field.
    """
    row = _canonical_row(raw)
    errors: dict[str, str] = {}

    company_name = _clean(row.get("company_name"))
    if not company_name:
        errors["companyName"] = "required"

    job_title = _clean(row.get("job_title"))
    if not job_title:
        errors["jobTitle"] = "required"

    locations = _split_locations(row.get("locations"))
    if not locations:
        errors["location"] = "at least one location is required"

    job_url = _clean(row.get("job_url"))
    if not job_url:
        errors["jobUrl"] = "required"
    elif not is_valid_url(job_url):
        errors["jobUrl"] = "not a valid URL"

    app_type = _clean(row.get("type"))
    if not app_type:
        errors["type"] = "required"
    elif app_type not in APPLICATION_TYPES:
        errors["type"] = f"must be one of {', '.join(APPLICATION_TYPES)}"

    category = _clean(row.get("category"))
    if not category:
        errors["category"] = "required"
    elif category not in CATEGORIES:
        errors["category"] = f"must be one of {', '.join(CATEGORIES)}"

    work_arrangement = _clean(row.get("work_arrangement")) or None
    if work_arrangement and work_arrangement not in WORK_ARRANGEMENTS:
        errors["workArrangement"] = f"must be one of {', '.join(WORK_ARRANGEMENTS)}"

    status = _clean(row.get("status")) or INITIAL_STATUS
    if status not in STATUSES:
        errors["status"] = f"must be one of {', '.join(STATUSES)}"

    if errors:
        raise RowValidationError(errors)

    return ApplicationCandidate(
        company_name=company_name,
        job_title=job_title,
        locations=locations,
        job_url=job_url,
        type=app_type,
        category=category,
        status=status,
        work_arrangement=work_arrangement,
        job_description=_clean(row.get("job_description")) or None,
        notes=_clean(row.get("notes")) or None,
        user_id=_clean(row.get("user_id")) or ALL_USERS,
        is_us_citizen_only=_parse_bool(row.get("is_us_citizen_only")),
    )


def normalize_url_row(raw: Any) -> str:
    url = _clean(raw)
    if not url:
        raise RowValidationError({"url": "required"})
    if not is_valid_url(url):
        raise RowValidationError({"url": "not a valid URL"})
    return url


def candidate_from_job_description(url: str, description: JobDescription, *, user_id: str) -> ApplicationCandidate:
    """Turn a gateway result into a candidate, filling what the model could not infer."""
    host = urlparse(url).netloc.split(":")[0]
    if host.startswith("www."):
        host = host[4:]

    raw = {
        "company_name": description.company_name or host,
        "job_title": description.job_title or PLACEHOLDER_TITLE,
        "locations": description.location or PLACEHOLDER_LOCATION,
        "job_url": url,
        "type": description.type if description.type in APPLICATION_TYPES else PLACEHOLDER_TYPE,
        "category": description.category if description.category in CATEGORIES else PLACEHOLDER_CATEGORY,
        "work_arrangement": description.work_arrangement if description.work_arrangement in WORK_ARRANGEMENTS else "",
        "job_description": description.description,
        "status": INITIAL_STATUS,
        "user_id": user_id,
        "is_us_citizen_only": description.is_us_citizen_only,
    }
    return normalize_filled_row(raw)


# user resolution


def resolve_intents(candidate: ApplicationCandidate, known_user_ids: Sequence[str]) -> list[ApplicationIntent]:
    """Fan a candidate out into one insert per (user, location)."""
    if candidate.user_id == ALL_USERS:
        if not known_user_ids:
            raise UserResolutionError("no users exist; add a user before importing applications")
        owners = list(known_user_ids)
    elif candidate.user_id in known_user_ids:
        owners = [candidate.user_id]
    else:
        raise UserResolutionError(f"user {candidate.user_id} not found")

    values = candidate.model_dump(exclude={"locations", "user_id"})
    return [
        ApplicationIntent(user_id=owner, location=location, **values)
        for location in candidate.locations
        for owner in owners
    ]


# CSV input


def parse_csv_rows(content: bytes | str) -> list[dict[str, str]]:
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise BatchFormatError("CSV file is not valid UTF-8") from exc

    if not content.strip():
        raise BatchFormatError("CSV file is empty")

    try:
        frame = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise BatchFormatError(f"Failed to parse CSV: {exc}") from exc

    frame.columns = [str(column).strip() for column in frame.columns]
    present = {_FIELD_ALIASES.get(column, column) for column in frame.columns}
    missing = [header for header in REQUIRED_CSV_HEADERS if _FIELD_ALIASES.get(header, header) not in present]
    if missing:
        raise BatchFormatError(f"Missing required headers: {', '.join(missing)}")
    if frame.empty:
        raise BatchFormatError("CSV file has a header but no rows")

    logger.info("Parsed CSV with %d rows and %d columns", len(frame), len(frame.columns))
    return frame.to_dict("records")


# summary


@dataclass(slots=True)
class RowOutcome:
    index: int
    identifier: str
    created: int = 0
    failure: RowFailure | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None


def _failed(index: int, identifier: str, stage: str, reason: str, fields: Iterable[str] = ()) -> RowOutcome:
    logger.warning("Ingestion row %d failed stage=%s reason=%s", index, stage, reason)
    return RowOutcome(
        index=index,
        identifier=identifier,
        failure=RowFailure(index=index, identifier=identifier, stage=stage, reason=reason, fields=list(fields)),
    )


def assemble_summary(*, total: int, dispatched: int, outcomes: Iterable[RowOutcome]) -> IngestionSummary:
    ordered = sorted(outcomes, key=lambda outcome: outcome.index)
    failures = [outcome.failure for outcome in ordered if outcome.failure is not None]
    succeeded = sum(1 for outcome in ordered if outcome.succeeded)
    return IngestionSummary(
        total=total,
        dispatched=dispatched,
        succeeded=succeeded,
        failed=len(failures),
        created=sum(outcome.created for outcome in ordered),
        failures=failures,
    )


def _row_identifier(raw: Mapping[str, Any]) -> str:
    row = _canonical_row(raw)
    company = _clean(row.get("company_name"))
    title = _clean(row.get("job_title"))
    url = _clean(row.get("job_url"))
    label = " / ".join(part for part in (company, title) if part)
    return label or url or "(empty row)"


# pipeline


class IngestionPipeline:
    """Bulk creation of applications where every row succeeds or fails on its own.

    Each row is written in its own transaction; there is no batch-wide rollback.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        gateway: AIGateway,
        *,
        max_concurrency: int = 4,
        gateway_timeout_sec: float = 60.0,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.max_concurrency = max_concurrency
        self.gateway_timeout_sec = gateway_timeout_sec

    def add_application(self, raw: Mapping[str, Any]) -> list[Application]:
        """Single add: same validation and fan-out as bulk rows, errors raised to the caller."""
        candidate = normalize_filled_row(raw)
        with self.session_factory() as session:
            repo = Repository(session)
            intents = resolve_intents(candidate, self._known_user_ids(repo))
            rows = repo.create_applications(intents)
            for row in rows:
                session.expunge(row)
            return rows

    def bulk_add_from_csv(self, content: bytes | str) -> IngestionSummary:
        return self.bulk_add_from_filled_rows(parse_csv_rows(content))

    def bulk_add_from_filled_rows(self, rows: Sequence[Mapping[str, Any]]) -> IngestionSummary:
        known_user_ids = self._load_known_user_ids()
        outcomes: list[RowOutcome] = []
        dispatched = 0

        for index, raw in enumerate(rows):
            identifier = _row_identifier(raw)
            try:
                candidate = normalize_filled_row(raw)
            except RowValidationError as exc:
                outcomes.append(_failed(index, identifier, "validation", str(exc), exc.fields))
                continue
            dispatched += 1
            outcomes.append(self._persist(index, identifier, candidate, known_user_ids))

        summary = assemble_summary(total=len(rows), dispatched=dispatched, outcomes=outcomes)
        logger.info(
            "Bulk row import finished total=%d succeeded=%d failed=%d created=%d",
            summary.total,
            summary.succeeded,
            summary.failed,
            summary.created,
        )
        return summary

    async def bulk_add_from_urls(self, urls: Sequence[str], *, user_id: str = ALL_USERS) -> IngestionSummary:
        known_user_ids = await asyncio.to_thread(self._load_known_user_ids)
        outcomes: list[RowOutcome] = []
        pending: list[tuple[int, str]] = []

        for index, raw in enumerate(urls):
            try:
                pending.append((index, normalize_url_row(raw)))
            except RowValidationError as exc:
                outcomes.append(_failed(index, _clean(raw) or "(empty row)", "validation", str(exc), exc.fields))

        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(
            *(self._ingest_url(semaphore, index, url, user_id, known_user_ids) for index, url in pending)
        )
        outcomes.extend(results)

        summary = assemble_summary(total=len(urls), dispatched=len(pending), outcomes=outcomes)
        logger.info(
            "Bulk URL import finished total=%d dispatched=%d succeeded=%d failed=%d",
            summary.total,
            summary.dispatched,
            summary.succeeded,
            summary.failed,
        )
        return summary

    async def _ingest_url(
        self,
        semaphore: asyncio.Semaphore,
        index: int,
        url: str,
        user_id: str,
        known_user_ids: Sequence[str],
    ) -> RowOutcome:
        async with semaphore:
            call = asyncio.ensure_future(asyncio.to_thread(self.gateway.fetch_job_description, url))
            try:
                description = await asyncio.wait_for(asyncio.shield(call), timeout=self.gateway_timeout_sec)
            except TimeoutError:
                # the worker thread cannot be interrupted; keep its slot until it returns
                await asyncio.gather(call, return_exceptions=True)
                return _failed(index, url, "gateway", f"timed out after {self.gateway_timeout_sec:g}s")
            except Exception as exc:
                return _failed(index, url, "gateway", str(exc) or exc.__class__.__name__)

        try:
            candidate = candidate_from_job_description(url, description, user_id=user_id)
        except RowValidationError as exc:
            return _failed(index, url, "validation", str(exc), exc.fields)
        return await asyncio.to_thread(self._persist, index, url, candidate, known_user_ids)

    def _persist(
        self,
        index: int,
        identifier: str,
        candidate: ApplicationCandidate,
        known_user_ids: Sequence[str],
    ) -> RowOutcome:
        try:
            intents = resolve_intents(candidate, known_user_ids)
        except UserResolutionError as exc:
            return _failed(index, identifier, "resolution", str(exc))

        with self.session_factory() as session:
            try:
                rows = Repository(session).create_applications(intents)
            except SQLAlchemyError as exc:
                session.rollback()
                return _failed(index, identifier, "persistence", str(getattr(exc, "orig", None) or exc))
        return RowOutcome(index=index, identifier=identifier, created=len(rows))

    def _load_known_user_ids(self) -> list[str]:
        with self.session_factory() as session:
            return self._known_user_ids(Repository(session))

    @staticmethod
    def _known_user_ids(repo: Repository) -> list[str]:
        return [user.id for user in repo.list_users()]
