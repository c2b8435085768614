from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.types import Receive, Scope, Send

from vibecode.api.deps import get_conversations, get_dispatcher
from vibecode.common.enums import GenerationType
from vibecode.common.exceptions import VibeCodeException
from vibecode.common.logging import get_logger
from vibecode.core.conversation.schemas import ConversationEntry
from vibecode.core.conversation.store import ConversationStore
from vibecode.core.generation.dispatcher import GenerationDispatcher, GenerationResult, StreamHandle
from vibecode.core.streaming.events import StreamEvent
from vibecode.core.streaming.sse import SSE_HEADERS, business_error_frame, encode_event

logger = get_logger("api.generation")

router = APIRouter(prefix="/apps/{app_id}", tags=["Generation"])


# ---------- Schemas ----------


class GenerateRequest(BaseModel):
    message: str
    type: GenerationType


class ConversationResponse(BaseModel):
    app_id: int
    messages: list[ConversationEntry]
    total: int


# ---------- Helpers ----------


async def _sse_body(handle: StreamHandle) -> AsyncIterator[str]:
    try:
        async for event in handle:
            yield encode_event(event)
    except VibeCodeException as e:
        logger.warning("Stream failed | app_id=%s | %s", handle.app_id, e.detail)
        yield business_error_frame(e.detail)
    except Exception:
        logger.exception("Unexpected stream failure | app_id=%s", handle.app_id)
        yield business_error_frame("Generation failed")
    finally:
        await handle.aclose()


class HandleStreamingResponse(StreamingResponse):
    """Event stream that closes its generation handle however the response ends.

    The body generator only starts after the headers are sent; a send that
    fails before then still releases the app's generation slot.
    """

    def __init__(self, handle: StreamHandle) -> None:
        super().__init__(_sse_body(handle), media_type="text/event-stream", headers=SSE_HEADERS)
        self.handle = handle

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            if not self.handle.finished:
                await self.handle.aclose()


# ---------- Endpoints ----------


@router.post("/generate", response_model=None)
async def generate(
    app_id: int,
    body: GenerateRequest,
    dispatcher: GenerationDispatcher = Depends(get_dispatcher),
) -> GenerationResult | StreamingResponse:
    outcome = await dispatcher.generate(app_id, body.message, body.type)
    if isinstance(outcome, StreamHandle):
        return HandleStreamingResponse(outcome)
    return outcome


@router.get("/generate/stream")
async def generate_stream(
    app_id: int,
    message: str = Query(...),
    type: GenerationType = Query(GenerationType.CHAT),
    dispatcher: GenerationDispatcher = Depends(get_dispatcher),
):
    """EventSource entry point; structured types are answered with a single ``done`` event."""
    outcome = await dispatcher.generate(app_id, message, type)
    if isinstance(outcome, StreamHandle):
        return HandleStreamingResponse(outcome)

    async def single() -> AsyncIterator[str]:
        yield encode_event(
            StreamEvent.done(deploy_key=outcome.deploy_key, preview_url=outcome.preview_url, files=outcome.files)
        )

    return StreamingResponse(single(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/conversation", response_model=ConversationResponse)
async def get_conversation(
    app_id: int,
    conversations: ConversationStore = Depends(get_conversations),
):
    messages = await conversations.load(app_id)
    return ConversationResponse(app_id=app_id, messages=messages, total=len(messages))


@router.delete("/conversation", status_code=204)
async def clear_conversation(
    app_id: int,
    conversations: ConversationStore = Depends(get_conversations),
):
    await conversations.clear(app_id)
