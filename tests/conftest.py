"""
Shared fixtures for provider and orchestrator tests
"""
import json
from pathlib import Path
from typing import List, Optional

import pytest

from encyclopedia.catalog import ProviderCatalog, reset_catalog
from encyclopedia.types import Attachment, StructuredResponse

CATALOG_PATH = Path(__file__).parent.parent / "config" / "providers.yaml"

CAPITAL_JSON = json.dumps({
    "text": "The capital of France is Paris.",
    "sources": ["General Knowledge"],
    "confidence_score": 99,
    "analysis": {"intent": "Information Retrieval", "context": "Geography"},
    "recommendations": [{"label": "Eiffel Tower", "score": 95}],
})


@pytest.fixture(autouse=True)
def reset_singletons():
    """テスト前後でシングルトンをリセット"""
    reset_catalog()
    yield
    reset_catalog()


@pytest.fixture
def catalog():
    return ProviderCatalog(path=CATALOG_PATH)


@pytest.fixture
def image_attachment():
    return Attachment(
        is_binary=True,
        mime_type="image/png",
        data="data:image/png;base64,iVBORw0KGgo=",
        name="photo.png",
    )


@pytest.fixture
def text_attachment():
    return Attachment(is_binary=False, mime_type="text/csv", data="city,pop\nParis,2.1M", name="cities.csv")


class FakeSynthesizer:
    """Records speak/cancel calls"""

    def __init__(self):
        self.spoken: List[str] = []
        self.cancels = 0
        self._speaking = False

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    def speak(self, text: str) -> None:
        self.spoken.append(text)
        self._speaking = True

    def cancel(self) -> None:
        self.cancels += 1
        self._speaking = False


class FakeRecognizer:
    def __init__(self):
        self.starts = 0
        self.stops = 0

    def start(self) -> None:
        self.starts += 1

    def stop(self) -> None:
        self.stops += 1


class FakeProvider:
    """ChatProvider double returning queued results (responses or exceptions)"""

    def __init__(self, config, results=None):
        self.config = config
        self.results = list(results or [])
        self.calls = []
        self.closed = False

    @property
    def supports_vision(self) -> bool:
        return self.config.supports_vision

    async def send(self, history, user_text, attachment=None):
        self.calls.append((list(history), user_text, attachment))
        result = self.results.pop(0) if self.results else StructuredResponse(text=f"echo: {user_text}")
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def recognizer():
    return FakeRecognizer()


async def no_sleep(seconds: float) -> None:
    return None


def make_factory(results: Optional[list] = None):
    """Provider factory building FakeProviders; created instances are kept on .created"""
    created = []

    def factory(config, catalog=None, *, on_progress=None):
        provider = FakeProvider(config, results)
        created.append(provider)
        return provider

    factory.created = created
    return factory
