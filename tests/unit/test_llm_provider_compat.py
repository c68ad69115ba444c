from __future__ import annotations

from types import SimpleNamespace

import pytest

from applytrack.config import Settings
from applytrack.llm.gateway import AIGateway
from applytrack.llm.providers import FileAttachment, GatewayConfig, LLMProvider, ProviderConfig, ProviderPool


class DummyAPIError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FakeResponsePayload:
    def __init__(self, *, output_text: str = "", raw: dict | None = None):
        self.output_text = output_text
        self._raw = raw or {}

    def model_dump(self) -> dict:
        return self._raw


class FakeChatPayload:
    def __init__(self, *, content: str, raw: dict | None = None):
        self.choices = [SimpleNamespace(message=SimpleNamespace(content=content))]
        self._raw = raw or {}

    def model_dump(self) -> dict:
        return self._raw


class FakeEndpoint:
    def __init__(self, fn):
        self._fn = fn

    def create(self, **kwargs):
        return self._fn(**kwargs)


class FakeClient:
    def __init__(self, *, responses_fn, chat_fn):
        self.responses = FakeEndpoint(responses_fn)
        self.chat = SimpleNamespace(completions=FakeEndpoint(chat_fn))


def _provider_with_fake_client(fake_client: FakeClient) -> LLMProvider:
    provider = LLMProvider(
        ProviderConfig(
            name="openai",
            base_url="http://localhost:9999/v1",
            api_key="dummy",
            timeout_sec=5,
        )
    )
    provider.client = fake_client
    return provider


def test_complete_text_uses_responses_when_available() -> None:
    chat_called = {"value": False}

    def responses_fn(**kwargs):
        return FakeResponsePayload(output_text="RESP_OK", raw={"id": "resp_1"})

    def chat_fn(**kwargs):
        chat_called["value"] = True
        return FakeChatPayload(content="CHAT_OK")

    provider = _provider_with_fake_client(FakeClient(responses_fn=responses_fn, chat_fn=chat_fn))
    result = provider.complete_text(model="gpt-5-mini", prompt="ping")

    assert result.content == "RESP_OK"
    assert result.raw["api_path"] == "responses"
    assert chat_called["value"] is False


def test_complete_text_falls_back_to_chat_on_responses_not_found() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    def chat_fn(**kwargs):
        return FakeChatPayload(content="CHAT_OK", raw={"id": "chat_1"})

    provider = _provider_with_fake_client(FakeClient(responses_fn=responses_fn, chat_fn=chat_fn))
    result = provider.complete_text(model="gpt-5-mini", prompt="ping")

    assert result.content == "CHAT_OK"
    assert result.raw["api_path"] == "chat_completions"


def test_complete_text_does_not_fall_back_on_other_errors() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Rate limit", status_code=429)

    def chat_fn(**kwargs):
        raise AssertionError("chat path must not be used")

    provider = _provider_with_fake_client(FakeClient(responses_fn=responses_fn, chat_fn=chat_fn))
    with pytest.raises(DummyAPIError, match="Rate limit"):
        provider.complete_text(model="gpt-5-mini", prompt="ping")


def test_pdf_attachment_is_sent_as_input_file() -> None:
    seen: dict = {}

    def responses_fn(**kwargs):
        seen.update(kwargs)
        return FakeResponsePayload(output_text="resume text")

    provider = _provider_with_fake_client(FakeClient(responses_fn=responses_fn, chat_fn=None))
    provider.complete_text(
        model="gpt-5-mini",
        prompt="extract",
        attachments=[FileAttachment(filename="resume.pdf", data_uri="data:application/pdf;base64,JVBERi0=")],
    )

    content = seen["input"][0]["content"]
    assert content[0] == {"type": "input_text", "text": "extract"}
    assert content[1]["type"] == "input_file"
    assert content[1]["file_data"].startswith("data:application/pdf;base64,")


def test_complete_json_parses_fenced_chat_fallback_payload() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    def chat_fn(**kwargs):
        return FakeChatPayload(content='```json\n{"score": 70, "summary": "ok"}\n```')

    provider = _provider_with_fake_client(FakeClient(responses_fn=responses_fn, chat_fn=chat_fn))
    payload = provider.complete_json(model="gpt-5", prompt="json please")

    assert payload == {"score": 70, "summary": "ok"}


def test_pool_skips_disabled_providers_and_puts_primary_first() -> None:
    pool = ProviderPool(
        GatewayConfig(
            providers={
                "openai": ProviderConfig(name="openai", base_url="http://a/v1", api_key="k", timeout_sec=5),
                "local": ProviderConfig(name="local", base_url="http://b/v1", api_key="k", timeout_sec=5),
                "spare": ProviderConfig(
                    name="spare", base_url="http://c/v1", api_key="k", timeout_sec=5, enabled=False
                ),
            }
        )
    )

    assert [provider.config.name for provider in pool.ordered("local")] == ["local", "openai"]
    assert pool.get("spare") is None


def test_each_provider_is_called_with_its_own_model() -> None:
    settings = Settings(
        openai_api_key="",
        local_llm_enabled=True,
        local_llm_model="qwen2.5:14b-instruct",
        openai_model_extractor="gpt-5-mini",
    )
    gateway = AIGateway(GatewayConfig.from_settings(settings))
    models: list[str] = []

    def responses_fn(**kwargs):
        models.append(kwargs["model"])
        return FakeResponsePayload(output_text='{"keywords": ["Go"], "suggestions": ""}')

    def chat_fn(**kwargs):
        raise AssertionError("chat.completions must not be called")

    gateway.pool.get("local").client = FakeClient(responses_fn=responses_fn, chat_fn=chat_fn)
    result = gateway.extract_keywords("Build APIs in Go")

    assert result.keywords == ["Go"]
    assert models == ["qwen2.5:14b-instruct"]


def test_provider_models_come_from_settings() -> None:
    config = GatewayConfig.from_settings(
        Settings(
            openai_api_key="k",
            openai_model_extractor="gpt-5-mini",
            openai_model_scorer="gpt-5",
            local_llm_enabled=True,
            local_llm_model="llama3.1:8b",
        )
    )

    assert config.providers["openai"].model_for("extract") == "gpt-5-mini"
    assert config.providers["openai"].model_for("score") == "gpt-5"
    assert config.providers["local"].model_for("extract") == "llama3.1:8b"
    assert config.providers["local"].model_for("score") == "llama3.1:8b"
