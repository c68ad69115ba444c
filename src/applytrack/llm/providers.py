from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from openai import OpenAI

from applytrack.config import Settings
from applytrack.types import ModelResponse

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    timeout_sec: int
    enabled: bool = True
    extract_model: str = "gpt-5-mini"
    score_model: str = "gpt-5"

    def model_for(self, task: str) -> str:
        return self.score_model if task == "score" else self.extract_model


@dataclass(slots=True)
class FileAttachment:
    filename: str
    data_uri: str


@dataclass(slots=True)
class GatewayConfig:
    """Everything the AI gateway needs, resolved once at process start."""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    extract_provider: str = "openai"
    score_provider: str = "openai"
    job_fetch_timeout_sec: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> GatewayConfig:
        return cls(
            providers={
                "openai": ProviderConfig(
                    name="openai",
                    base_url=settings.openai_base_url,
                    api_key=settings.openai_api_key,
                    timeout_sec=settings.openai_timeout_sec,
                    enabled=bool(settings.openai_api_key),
                    extract_model=settings.openai_model_extractor,
                    score_model=settings.openai_model_scorer,
                ),
                "local": ProviderConfig(
                    name="local",
                    base_url=settings.local_llm_base_url,
                    api_key=settings.local_llm_api_key,
                    timeout_sec=settings.local_llm_timeout_sec,
                    enabled=settings.local_llm_enabled,
                    extract_model=settings.local_llm_model,
                    score_model=settings.local_llm_model,
                ),
            },
            extract_provider=settings.llm_router_extract_provider,
            score_provider=settings.llm_router_score_provider,
            job_fetch_timeout_sec=settings.job_fetch_timeout_sec,
        )


class LLMProvider:
    def __init__(self, config: ProviderConfig):
        self.config = config
        self.client = OpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=float(config.timeout_sec),
        )

    def complete_text(
        self,
        *,
        model: str,
        prompt: str,
        attachments: list[FileAttachment] | None = None,
    ) -> ModelResponse:
        try:
            return self._complete_via_responses(model=model, prompt=prompt, attachments=attachments or [])
        except Exception as exc:
            if not self._is_unsupported_responses_endpoint(exc):
                raise

            logger.warning(
                "Responses API unavailable for provider=%s base_url=%s; "
                "falling back to chat.completions (%s)",
                self.config.name,
                self.config.base_url,
                exc,
            )
            return self._complete_via_chat_completions(model=model, prompt=prompt, attachments=attachments or [])

    def complete_json(
        self,
        *,
        model: str,
        prompt: str,
        attachments: list[FileAttachment] | None = None,
    ) -> dict[str, Any]:
        text_response = self.complete_text(model=model, prompt=prompt, attachments=attachments)
        return parse_json(text_response.content)

    def _complete_via_responses(
        self,
        *,
        model: str,
        prompt: str,
        attachments: list[FileAttachment],
    ) -> ModelResponse:
        content: list[dict[str, Any]] = [{"type": "input_text", "text": prompt}]
        for item in attachments:
            content.append({"type": "input_file", "filename": item.filename, "file_data": item.data_uri})

        response = self.client.responses.create(
            model=model,
            input=[{"role": "user", "content": content}],
        )
        text = getattr(response, "output_text", "") or ""
        raw = response.model_dump() if hasattr(response, "model_dump") else {}
        if not isinstance(raw, dict):
            raw = {"raw": raw}
        raw["api_path"] = "responses"
        return ModelResponse(content=text, raw=raw)

    def _complete_via_chat_completions(
        self,
        *,
        model: str,
        prompt: str,
        attachments: list[FileAttachment],
    ) -> ModelResponse:
        if attachments:
            content: Any = [{"type": "text", "text": prompt}]
            for item in attachments:
                content.append({"type": "file", "file": {"filename": item.filename, "file_data": item.data_uri}})
        else:
            content = prompt

        response = self.client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": content}],
        )

        text = self._extract_chat_text(response)
        raw = response.model_dump() if hasattr(response, "model_dump") else {}
        if not isinstance(raw, dict):
            raw = {"raw": raw}
        raw["api_path"] = "chat_completions"
        return ModelResponse(content=text, raw=raw)

    @staticmethod
    def _extract_chat_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""

        message = getattr(choices[0], "message", None)
        if message is None:
            return ""

        content = getattr(message, "content", "")
        if isinstance(content, str):
            return content
        if content is None:
            return ""
        return str(content)

    @staticmethod
    def _is_unsupported_responses_endpoint(exc: Exception) -> bool:
        status_code = getattr(exc, "status_code", None)
        if status_code == 404:
            return True

        message = str(exc).strip().lower()
        if not message:
            return False

        return "not found" in message or "404" in message


def parse_json(content: str) -> dict[str, Any]:
    candidate = content.strip()
    if not candidate:
        return {}

    if "```" in candidate:
        parts = candidate.split("```")
        for part in parts:
            part = part.strip()
            if part.startswith("json"):
                part = part[4:].strip()
            if part.startswith("{") and part.endswith("}"):
                candidate = part
                break

    try:
        value = json.loads(candidate)
        return value if isinstance(value, dict) else {}
    except json.JSONDecodeError:
        logger.warning("Failed to parse JSON model output")
        return {}


class ProviderPool:
    def __init__(self, config: GatewayConfig):
        self.config = config
        self._providers: dict[str, LLMProvider] = {}

    def get(self, name: str) -> LLMProvider | None:
        provider_config = self.config.providers.get(name)
        if provider_config is None or not provider_config.enabled:
            return None
        if name not in self._providers:
            self._providers[name] = LLMProvider(provider_config)
        return self._providers[name]

    def ordered(self, primary: str) -> list[LLMProvider]:
        names = [primary] + [name for name in self.config.providers if name != primary]
        providers = [self.get(name) for name in names]
        return [provider for provider in providers if provider is not None]
