import os

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# No real provider credentials or store tokens in tests
os.environ["GEMINI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["GITHUB_TOKEN"] = ""
os.environ["RECORD_STORE"] = "memory"
os.environ["LLM_PROVIDER"] = "auto"

from medcapture.config import Settings
from medcapture.dependencies import get_extractor, get_record_store, get_settings
from medcapture.main import app
from medcapture.services.extractor import Extractor
from medcapture.services.record_store import InMemoryRecordStore


class FakeLLMClient:
    """Stands in for LLMClient: records prompts and returns a canned response."""

    def __init__(self, response: str = "[]", provider: str = "gemini", error: Exception | None = None):
        self.provider = provider
        self.model = "fake-model"
        self.response = response
        self.error = error
        self.calls: list[tuple[str, object]] = []

    def available(self) -> bool:
        return True

    def supports_media(self, mime_type: str) -> bool:
        if self.provider == "gemini":
            return mime_type.startswith(("image/", "video/"))
        return mime_type.startswith("image/")

    async def complete(self, prompt, *, attachment=None) -> str:
        self.calls.append((prompt, attachment))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def settings():
    return Settings(gemini_api_key="test-key", record_store="memory")


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def extractor(settings, fake_llm):
    return Extractor(settings, client=fake_llm)


@pytest.fixture
def make_extractor(settings):
    """Build an Extractor over a FakeLLMClient with a given canned response."""

    def _make(response: str = "[]", provider: str = "gemini", error: Exception | None = None):
        client = FakeLLMClient(response=response, provider=provider, error=error)
        return Extractor(settings, client=client), client

    return _make


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def candidate():
    """A well-formed raw candidate as the model returns it."""
    return {
        "type": "lab_result",
        "category": "blood_chemistry",
        "data": {
            "name": "Glucose",
            "value": "95",
            "units": "mg/dL",
            "date": "2024-01-15",
            "reference_range": "70-100 mg/dL",
            "interpretation": "normal",
        },
        "confidence": 0.9,
        "source_text": "Glucose 95 mg/dL (70-100)",
    }


@pytest_asyncio.fixture
async def async_client(settings, extractor, store):
    """Async httpx client against the app with fake extractor and in-memory store."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_extractor] = lambda: extractor
    app.dependency_overrides[get_record_store] = lambda: store
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
