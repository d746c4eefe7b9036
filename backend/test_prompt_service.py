from __future__ import annotations

import json

import httpx
import pytest

from models.constants import DEFAULT_PROMPT_SUGGESTION_INPUT, PROMPT_SUGGESTION_SYSTEM_PROMPT
from models.errors import AIGatewayError
from models.schemas import PromptSuggestionRequestBody
from repositories import llm_repository
from services import generation_service, prompt_service
from services.artifact_store import ArtifactStore
from test_support import FakeBlobStorage, FakeFetcher, FakeRecordStore, FakeTaskClient, make_settings

pytestmark = pytest.mark.anyio


def chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.fixture
def configured(monkeypatch: pytest.MonkeyPatch):  # noqa: ANN201
    def apply(**overrides: object) -> None:
        monkeypatch.setattr(generation_service, "runtime", None)
        generation_service.configure(
            make_settings(**overrides),
            task_client=FakeTaskClient(),
            fetcher=FakeFetcher(),
            artifact_store=ArtifactStore(FakeBlobStorage()),
            record_repository=FakeRecordStore(),
        )

    return apply


class TestBuildUserInput:
    def test_lines_for_each_provided_field(self) -> None:
        body = PromptSuggestionRequestBody(title=" Night Drive ", style="synthwave", lyrics="neon, rain")

        assert prompt_service.build_user_input(body) == (
            "Title: Night Drive\nStyle: synthwave\nLyrics/Mood: neon, rain"
        )

    def test_blank_fields_fall_back_to_default_input(self) -> None:
        body = PromptSuggestionRequestBody(title="  ", lyrics="")

        assert prompt_service.build_user_input(body) == DEFAULT_PROMPT_SUGGESTION_INPUT

    def test_messages_start_with_system_prompt(self) -> None:
        messages = prompt_service.build_messages(PromptSuggestionRequestBody(style="jazz"))

        assert messages == [
            {"role": "system", "content": PROMPT_SUGGESTION_SYSTEM_PROMPT},
            {"role": "user", "content": "Style: jazz"},
        ]


class TestSuggestPrompt:
    async def test_returns_generated_prompt(self, configured, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
        configured(llm_api_key="llm-key", llm_api_url="https://llm.test/v1/chat/completions")
        seen: dict[str, object] = {}

        async def fake_request_chat_completion(api_url, api_key, messages, *, model, timeout):  # noqa: ANN001
            seen.update(api_url=api_url, api_key=api_key, user=messages[1]["content"], model=model)
            return "A dreamy synthwave track"

        monkeypatch.setattr(llm_repository, "request_chat_completion", fake_request_chat_completion)

        result = await prompt_service.suggest_prompt(PromptSuggestionRequestBody(style="synthwave"))

        assert result == {"prompt": "A dreamy synthwave track"}
        assert seen == {
            "api_url": "https://llm.test/v1/chat/completions",
            "api_key": "llm-key",
            "user": "Style: synthwave",
            "model": "google/gemini-2.5-flash",
        }

    async def test_missing_api_key_is_reported(self, configured) -> None:  # noqa: ANN001
        configured()

        with pytest.raises(AIGatewayError, match="LLM_API_KEY is not configured") as excinfo:
            await prompt_service.suggest_prompt(PromptSuggestionRequestBody())

        assert excinfo.value.status_code == 500


class TestRequestChatCompletion:
    async def test_posts_chat_payload_and_strips_content(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return chat_response("  lo-fi beats at 80 BPM \n")

        content = await llm_repository.request_chat_completion(
            "https://llm.test/v1/chat/completions",
            "llm-key",
            [{"role": "user", "content": "hi"}],
            model="google/gemini-2.5-flash",
            transport=httpx.MockTransport(handler),
        )

        assert content == "lo-fi beats at 80 BPM"
        assert seen[0].headers["Authorization"] == "Bearer llm-key"
        payload = json.loads(seen[0].content)
        assert payload["model"] == "google/gemini-2.5-flash"
        assert payload["max_tokens"] == 300
        assert payload["temperature"] == 0.8

    @pytest.mark.parametrize(
        ("response", "status_code", "message"),
        [
            (httpx.Response(429), 429, "Rate limit exceeded"),
            (httpx.Response(402), 402, "Credits insufficient"),
            (httpx.Response(500, text="boom"), 500, "AI gateway error: 500"),
            (chat_response("   "), 500, "No prompt generated"),
            (httpx.Response(200, json={"choices": []}), 500, "No prompt generated"),
        ],
    )
    async def test_gateway_errors_map_to_status_codes(
        self, response: httpx.Response, status_code: int, message: str
    ) -> None:
        with pytest.raises(AIGatewayError, match=message) as excinfo:
            await llm_repository.request_chat_completion(
                "https://llm.test/v1/chat/completions",
                "llm-key",
                [],
                model="m",
                transport=httpx.MockTransport(lambda request: response),
            )

        assert excinfo.value.status_code == status_code
