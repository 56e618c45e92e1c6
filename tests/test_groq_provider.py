"""
Stateless HTTP provider tests (httpx.MockTransport, no network)
"""
import asyncio
import json

import httpx
import pytest

from encyclopedia.errors import AuthError, ConfigurationError, NotFoundError, ProviderError, TransientError
from encyclopedia.types import Message, Role, StructuredResponse
from providers.groq_http import GroqHttpProvider

from conftest import CAPITAL_JSON


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_provider(catalog, handler, credential="gsk-test", model=None):
    requests = []

    def recording(request):
        requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    provider = GroqHttpProvider(catalog.build_config("groq", credential, model), catalog, client=client)
    return provider, requests


class TestRequestShape:
    def test_payload_contract(self, catalog):
        provider, requests = make_provider(catalog, lambda r: httpx.Response(200, json=completion(CAPITAL_JSON)))
        history = [
            Message(role=Role.USER, content="Hi"),
            Message(role=Role.ASSISTANT, content=StructuredResponse(text="Hello!")),
        ]

        resp = asyncio.run(provider.send(history, "What is the capital of France?"))

        assert resp.text == "The capital of France is Paris."
        req = requests[0]
        assert req.method == "POST"
        assert req.headers["Authorization"] == "Bearer gsk-test"
        body = json.loads(req.content)
        assert body["model"] == "llama-3.1-70b-versatile"
        assert body["stream"] is False
        assert body["response_format"] == {"type": "json_object"}
        assert body["temperature"] == 0.5
        assert body["max_tokens"] == 1024
        roles = [m["role"] for m in body["messages"]]
        assert roles == ["system", "user", "assistant", "user"]
        assert body["messages"][2]["content"] == "Hello!"
        assert body["messages"][-1]["content"] == [{"type": "text", "text": "What is the capital of France?"}]

    def test_text_attachment_merged(self, catalog, text_attachment):
        provider, requests = make_provider(catalog, lambda r: httpx.Response(200, json=completion(CAPITAL_JSON)))
        asyncio.run(provider.send([], "Which city is largest?", text_attachment))

        user = json.loads(requests[0].content)["messages"][-1]["content"]
        assert len(user) == 1
        assert user[0]["text"].startswith("Here is the file content provided by the user for analysis:")
        assert "---\ncity,pop\nParis,2.1M\n---" in user[0]["text"]
        assert user[0]["text"].endswith("User Question: Which city is largest?")

    def test_image_switches_to_vision_model(self, catalog, image_attachment):
        """画像添付時はビジョンモデルへ切り替え"""
        provider, requests = make_provider(catalog, lambda r: httpx.Response(200, json=completion(CAPITAL_JSON)))
        asyncio.run(provider.send([], "What is this?", image_attachment))

        body = json.loads(requests[0].content)
        assert body["model"] == "llava-v1.5-7b-4096-preview"
        assert body["messages"][-1]["content"][1] == {
            "type": "image_url",
            "image_url": {"url": image_attachment.data},
        }


class TestResponses:
    def test_non_json_output_falls_back(self, catalog):
        provider, _ = make_provider(catalog, lambda r: httpx.Response(200, json=completion("Paris.")))
        resp = asyncio.run(provider.send([], "Capital?"))
        assert resp.text == "Paris."
        assert resp.sources == ["Groq LLM"]
        assert resp.confidence_score == 90

    def test_missing_credential_no_request(self, catalog):
        provider, requests = make_provider(catalog, lambda r: httpx.Response(200), credential=None)
        with pytest.raises(ConfigurationError):
            asyncio.run(provider.send([], "Capital?"))
        assert requests == []

    @pytest.mark.parametrize("status,kind", [
        (401, AuthError),
        (404, NotFoundError),
        (429, TransientError),
        (503, TransientError),
        (400, ProviderError),
    ])
    def test_error_statuses(self, catalog, status, kind):
        provider, _ = make_provider(
            catalog,
            lambda r: httpx.Response(status, json={"error": {"message": "upstream says no"}}),
        )
        with pytest.raises(kind) as exc_info:
            asyncio.run(provider.send([], "Capital?"))
        assert exc_info.value.status == status

    def test_error_message_from_body(self, catalog):
        provider, _ = make_provider(
            catalog,
            lambda r: httpx.Response(400, json={"error": {"message": "context too long"}}),
        )
        with pytest.raises(ProviderError, match="context too long"):
            asyncio.run(provider.send([], "Capital?"))

    def test_timeout_is_transient(self, catalog):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider, _ = make_provider(catalog, handler)
        with pytest.raises(TransientError):
            asyncio.run(provider.send([], "Capital?"))

    def test_unexpected_shape(self, catalog):
        provider, _ = make_provider(catalog, lambda r: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProviderError):
            asyncio.run(provider.send([], "Capital?"))
