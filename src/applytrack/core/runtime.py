from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from applytrack.config import Settings
from applytrack.core.ingestion import IngestionPipeline
from applytrack.errors import ConfigurationError
from applytrack.llm.gateway import AIGateway
from applytrack.llm.providers import GatewayConfig
from applytrack.storage.base import FileStore
from applytrack.storage.drive import DriveConfig, GoogleDriveStore
from applytrack.storage.local import LocalFileStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    settings: Settings
    gateway: AIGateway
    file_store: FileStore
    pipeline: IngestionPipeline


def build_file_store(settings: Settings) -> FileStore:
    if settings.file_store_backend == "google_drive":
        return GoogleDriveStore(DriveConfig.from_settings(settings))
    return LocalFileStore(settings.upload_dir)


def build_services(
    settings: Settings,
    session_factory: Callable[[], Session],
    *,
    gateway: AIGateway | None = None,
    file_store: FileStore | None = None,
) -> Services:
    """Wire gateways and the pipeline from settings, failing fast on missing configuration.

    Explicit ``gateway``/``file_store`` arguments skip construction (and validation) of that part.
    """
    missing: list[str] = []
    if gateway is None:
        missing += settings.missing_ai_settings()
    if file_store is None:
        missing += settings.missing_file_store_settings()
    if missing:
        raise ConfigurationError(missing)

    gateway = gateway or AIGateway(GatewayConfig.from_settings(settings))
    file_store = file_store or build_file_store(settings)
    pipeline = IngestionPipeline(
        session_factory,
        gateway,
        max_concurrency=settings.ingest_max_concurrency,
        gateway_timeout_sec=settings.gateway_timeout_sec,
    )
    logger.info(
        "Services ready file_store=%s ingest_max_concurrency=%d gateway_timeout_sec=%g",
        settings.file_store_backend,
        settings.ingest_max_concurrency,
        settings.gateway_timeout_sec,
    )
    return Services(settings=settings, gateway=gateway, file_store=file_store, pipeline=pipeline)
