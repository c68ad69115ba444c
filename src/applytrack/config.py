from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "applytrack"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8787
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/applytrack.db"
    data_dir: Path = Path("./data")
    upload_dir: Path = Path("./data/uploads")

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_extractor: str = "gpt-5-mini"
    openai_model_scorer: str = "gpt-5"
    openai_timeout_sec: int = 60

    local_llm_enabled: bool = False
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_model: str = "qwen2.5:14b-instruct"
    local_llm_timeout_sec: int = 90

    llm_router_extract_provider: str = "openai"
    llm_router_score_provider: str = "openai"

    file_store_backend: str = "local"
    google_service_account_email: str = ""
    google_private_key: str = ""
    google_drive_folder_id: str = ""

    ingest_max_concurrency: int = 4
    gateway_timeout_sec: float = 60.0
    job_fetch_timeout_sec: int = 30

    latex_compiler: str = "pdflatex"
    latex_timeout_sec: int = 60
    max_upload_mb: int = 10

    web_ui_enabled: bool = True
    cors_origins: str = "http://127.0.0.1:8787"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("file_store_backend")
    @classmethod
    def validate_file_store_backend(cls, value: str) -> str:
        allowed = {"google_drive", "local"}
        if value not in allowed:
            raise ValueError(f"file_store_backend must be one of {sorted(allowed)}")
        return value

    @field_validator("ingest_max_concurrency")
    @classmethod
    def validate_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("ingest_max_concurrency must be at least 1")
        return value

    @field_validator("gateway_timeout_sec")
    @classmethod
    def validate_gateway_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("gateway_timeout_sec must be positive")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def missing_ai_settings(self) -> list[str]:
        if not self.openai_api_key and not self.local_llm_enabled:
            return ["OPENAI_API_KEY (or LOCAL_LLM_ENABLED=true)"]
        return []

    def missing_file_store_settings(self) -> list[str]:
        if self.file_store_backend != "google_drive":
            return []
        names = ("google_service_account_email", "google_private_key", "google_drive_folder_id")
        return [name.upper() for name in names if not getattr(self, name)]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
