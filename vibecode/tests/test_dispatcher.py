import pytest
from conftest import html_response
from prometheus_client import REGISTRY

from vibecode.common.enums import GenerationType, MessageRole, StreamEventType
from vibecode.common.exceptions import GenerationFailed, GenerationInProgress, ValidationFailed
from vibecode.core.conversation.store import ConversationStore
from vibecode.core.generation.dispatcher import GenerationDispatcher, GenerationResult, StreamHandle
from vibecode.core.preview.receiver import RECEIVER_MARKER
from vibecode.core.streaming.events import StreamEvent


def _generations(type_: str, outcome: str) -> float:
    return REGISTRY.get_sample_value("vibecode_generations_total", {"type": type_, "outcome": outcome}) or 0.0


def _assert_no_deploys(output_root):
    assert [p.name for p in output_root.iterdir() if p.name != ".staging"] == []
    staging = output_root / ".staging"
    assert not staging.exists() or list(staging.iterdir()) == []


@pytest.mark.asyncio
async def test_html_generation_returns_published_artifact(dispatcher, fake_ai, output_root):
    fake_ai.structured.append(html_response("<html><body>hello</body></html>"))

    result = await dispatcher.generate(1, "a hello page", GenerationType.HTML)

    assert isinstance(result, GenerationResult)
    assert result.artifact.kind == "html"
    assert result.files == ["index.html"]
    assert result.preview_url == f"/static/{result.deploy_key}/"
    assert (output_root / result.deploy_key / "index.html").exists()
    assert not dispatcher.locks.is_active(1)


@pytest.mark.asyncio
async def test_second_turn_sees_first_turn(dispatcher, fake_ai, conversations):
    first = html_response("<p>v1</p>")
    fake_ai.structured.extend([first, html_response("<p>v2</p>")])

    await dispatcher.generate(4, "make a landing page", "html")
    await dispatcher.generate(4, "now make it blue", "html")

    second_prompt = fake_ai.calls[1]["messages"]
    assert second_prompt == [
        {"role": "user", "content": "make a landing page"},
        {"role": "assistant", "content": first},
        {"role": "user", "content": "now make it blue"},
    ]
    history = await conversations.load(4)
    assert [e.role for e in history] == [MessageRole.USER, MessageRole.ASSISTANT] * 2


@pytest.mark.asyncio
async def test_failed_turn_persists_nothing(dispatcher, fake_ai, conversations, output_root):
    fake_ai.structured.append("sorry, no html today")
    before = _generations("html", "failed")

    with pytest.raises(GenerationFailed):
        await dispatcher.generate(2, "page", GenerationType.HTML)

    assert await conversations.load(2) == []
    assert not dispatcher.locks.is_active(2)
    assert _generations("html", "failed") == before + 1
    _assert_no_deploys(output_root)


@pytest.mark.asyncio
async def test_invalid_artifact_is_rejected_before_saving(dispatcher, fake_ai, output_root):
    fake_ai.structured.append(html_response("   "))

    with pytest.raises(ValidationFailed):
        await dispatcher.generate(2, "page", GenerationType.HTML)
    _assert_no_deploys(output_root)


@pytest.mark.asyncio
@pytest.mark.parametrize("message,type_", [("", "html"), ("   ", "chat"), ("hi", "spreadsheet")])
async def test_bad_requests_are_rejected(dispatcher, message, type_):
    with pytest.raises(ValidationFailed):
        await dispatcher.generate(3, message, type_)
    assert not dispatcher.locks.is_active(3)


@pytest.mark.asyncio
async def test_model_timeout(fake_ai, conversations, saver, storage):
    fake_ai.delay = 1.0
    dispatcher = GenerationDispatcher(fake_ai, conversations, saver, storage, timeout_seconds=0.01)

    with pytest.raises(GenerationFailed) as exc_info:
        await dispatcher.generate(5, "slow", GenerationType.HTML)
    assert "timed out" in exc_info.value.detail
    assert not dispatcher.locks.is_active(5)


@pytest.mark.asyncio
async def test_store_write_failure_does_not_fail_turn(fake_ai, saver, storage):
    class ReadOnlyKV:
        async def get(self, key):
            return None

        async def set(self, key, value, ttl_seconds):
            raise ConnectionError("read only")

        async def delete(self, key):
            return None

        async def health_check(self):
            return True

    store = ConversationStore(ReadOnlyKV(), ttl_seconds=60)
    dispatcher = GenerationDispatcher(fake_ai, store, saver, storage)
    fake_ai.structured.append(html_response("<p>ok</p>"))

    result = await dispatcher.generate(6, "page", GenerationType.HTML)
    assert result.deploy_key


@pytest.mark.asyncio
async def test_concurrent_generation_for_same_app_is_rejected(dispatcher, fake_ai):
    handle = await dispatcher.generate(1, "hello", GenerationType.CHAT)
    assert isinstance(handle, StreamHandle)
    assert dispatcher.locks.is_active(1)

    with pytest.raises(GenerationInProgress) as exc_info:
        await dispatcher.generate(1, "again", GenerationType.HTML)
    assert exc_info.value.status_code == 409

    # Other apps are unaffected
    fake_ai.structured.append(html_response("<p>other</p>"))
    assert isinstance(await dispatcher.generate(2, "other", GenerationType.HTML), GenerationResult)

    await handle.aclose()
    assert not dispatcher.locks.is_active(1)
    retry = await dispatcher.generate(1, "retry", GenerationType.CHAT)
    assert isinstance(retry, StreamHandle)
    await retry.aclose()


@pytest.mark.asyncio
async def test_stream_handle_is_lazy(dispatcher, fake_ai):
    handle = await dispatcher.generate(1, "hello", GenerationType.CHAT)
    assert fake_ai.calls == []

    events = [event async for event in handle]
    assert len(fake_ai.calls) == 1
    assert events[-1].type == StreamEventType.DONE
    assert handle.finished


@pytest.mark.asyncio
async def test_chat_stream_records_turn_after_completion(dispatcher, fake_ai, conversations):
    fake_ai.streams.append([StreamEvent.text_chunk("Hi "), StreamEvent.text_chunk("there"), StreamEvent.done()])

    handle = await dispatcher.generate(8, "hello", GenerationType.CHAT)
    events = [event async for event in handle]

    assert [e.text for e in events if e.type == StreamEventType.TEXT_CHUNK] == ["Hi ", "there"]
    assert events[-1].type == StreamEventType.DONE
    history = await conversations.load(8)
    assert [(e.role, e.content) for e in history] == [
        (MessageRole.USER, "hello"),
        (MessageRole.ASSISTANT, "Hi there"),
    ]
    assert not dispatcher.locks.is_active(8)


@pytest.mark.asyncio
async def test_stream_handle_cannot_be_restarted(dispatcher):
    handle = await dispatcher.generate(1, "hello", GenerationType.CHAT)
    async for _ in handle:
        pass

    with pytest.raises(RuntimeError):
        handle.__aiter__()


@pytest.mark.asyncio
async def test_vue_project_stream_publishes_files(dispatcher, fake_ai, output_root, preview, conversations):
    handle = await dispatcher.generate(9, "a counter app", GenerationType.VUE_PROJECT)
    assert handle.deploy_key.startswith("vue_project_9_")

    events = [event async for event in handle]

    done = events[-1]
    assert done.type == StreamEventType.DONE
    assert done.payload["deploy_key"] == handle.deploy_key
    assert done.payload["files"] == ["package.json", "index.html", "src/main.js", "src/App.vue"]
    assert fake_ai.calls[0]["tools"]
    for path in done.payload["files"]:
        assert (output_root / handle.deploy_key / path).is_file()
    assert RECEIVER_MARKER.encode() in preview.resolve(handle.deploy_key, "").body

    history = await conversations.load(9)
    assert "src/App.vue" in history[-1].content


@pytest.mark.asyncio
async def test_cancelled_stream_leaves_nothing_behind(dispatcher, fake_ai, output_root, conversations):
    fake_ai.streams.append(
        [
            StreamEvent.file_begin("index.html"),
            StreamEvent.file_chunk("index.html", "<html>"),
            StreamEvent.file_begin("src/main.js"),
            StreamEvent.file_chunk("src/main.js", "import"),
            StreamEvent.file_end("index.html"),
            StreamEvent.file_end("src/main.js"),
            StreamEvent.done(),
        ]
    )
    before = _generations("vue_project", "cancelled")

    handle = await dispatcher.generate(10, "project", GenerationType.VUE_PROJECT)
    seen = 0
    async for _ in handle:
        seen += 1
        if seen == 3:
            break
    await handle.aclose()

    _assert_no_deploys(output_root)
    assert await conversations.load(10) == []
    assert not dispatcher.locks.is_active(10)
    assert _generations("vue_project", "cancelled") == before + 1


@pytest.mark.asyncio
async def test_errored_stream_cleans_up_and_raises(dispatcher, fake_ai, output_root, conversations):
    fake_ai.streams.append(
        [
            StreamEvent.file_begin("index.html"),
            StreamEvent.file_chunk("index.html", "<html>"),
            StreamEvent.file_end("index.html"),
            StreamEvent.error("model stream failed"),
        ]
    )

    handle = await dispatcher.generate(11, "project", GenerationType.VUE_PROJECT)
    with pytest.raises(GenerationFailed):
        async for _ in handle:
            pass

    _assert_no_deploys(output_root)
    assert await conversations.load(11) == []
    assert not dispatcher.locks.is_active(11)


@pytest.mark.asyncio
async def test_unopened_handle_releases_lock_on_close(dispatcher, fake_ai):
    handle = await dispatcher.generate(12, "never read", GenerationType.AGENT)
    await handle.aclose()

    assert not dispatcher.locks.is_active(12)
    assert fake_ai.calls == []
