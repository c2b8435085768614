import asyncio
import json
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from vibecode.api.deps import build_container
from vibecode.config import Settings
from vibecode.core.artifacts.saver import ArtifactSaver
from vibecode.core.conversation.store import ConversationStore
from vibecode.core.generation.dispatcher import GenerationDispatcher
from vibecode.core.preview.service import PreviewServer
from vibecode.core.streaming.events import StreamEvent
from vibecode.integrations.ai_client import AIClient
from vibecode.integrations.kv_store import InMemoryKVStore
from vibecode.integrations.storage import ArtifactStorage


class FakeAIClient(AIClient):
    """Model client that replays scripted responses and records every prompt.

    Unscripted calls fall through to the built-in mock output.
    """

    def __init__(self):
        super().__init__(api_key="mock_test_key")
        self.structured: list[str] = []
        self.streams: list[list[StreamEvent]] = []
        self.calls: list[dict] = []
        self.delay: float = 0.0

    async def complete(self, generation_type, system, messages, temperature=0.4):
        self.calls.append({"type": generation_type, "system": system, "messages": list(messages)})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.structured:
            return self.structured.pop(0)
        return await super().complete(generation_type, system, messages, temperature)

    async def stream(self, generation_type, system, messages, tools=None):
        self.calls.append({"type": generation_type, "system": system, "messages": list(messages), "tools": tools})
        if self.streams:
            for event in self.streams.pop(0):
                yield event
            return
        async for event in super().stream(generation_type, system, messages, tools):
            yield event


def html_response(markup: str, description: str = "generated") -> str:
    return json.dumps({"htmlCode": markup, "description": description})


def files_response(*files: tuple[str, str]) -> str:
    return json.dumps({"files": [{"path": p, "content": c} for p, c in files], "description": "bundle"})


@pytest.fixture
def output_root(tmp_path) -> Path:
    root = tmp_path / "output"
    root.mkdir()
    return root


@pytest.fixture
def storage(output_root) -> ArtifactStorage:
    return ArtifactStorage(output_root)


@pytest.fixture
def kv_store() -> InMemoryKVStore:
    return InMemoryKVStore()


@pytest.fixture
def conversations(kv_store) -> ConversationStore:
    return ConversationStore(kv_store, ttl_seconds=60, namespace="test:chat", max_messages=20)


@pytest.fixture
def saver(storage) -> ArtifactSaver:
    return ArtifactSaver(storage)


@pytest.fixture
def preview(storage) -> PreviewServer:
    return PreviewServer(storage)


@pytest.fixture
def fake_ai() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def dispatcher(fake_ai, conversations, saver, storage) -> GenerationDispatcher:
    return GenerationDispatcher(fake_ai, conversations, saver, storage, timeout_seconds=5)


@pytest.fixture
def test_settings(output_root) -> Settings:
    return Settings(
        CODE_OUTPUT_ROOT=str(output_root),
        CONVERSATION_BACKEND="memory",
        CONVERSATION_KEY_PREFIX="test:chat",
        AI_API_KEY="mock_test_key",
        HTML_AUGMENTATION="serve",
    )


@pytest.fixture
def container(test_settings, fake_ai, kv_store):
    return build_container(test_settings, ai_client=fake_ai, kv_store=kv_store)


@pytest.fixture
async def client(container):
    from vibecode.main import app

    # ASGITransport does not run the lifespan hook
    app.state.container = container

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def parse_sse(body: str) -> list[tuple[str | None, dict]]:
    """Split an event-stream body into ``(event name, data)`` pairs."""
    frames = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        name = None
        data = None
        for line in block.split("\n"):
            if line.startswith("event: "):
                name = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        frames.append((name, data))
    return frames
