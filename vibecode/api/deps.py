from dataclasses import dataclass

from fastapi import Request

from vibecode.common.enums import HtmlAugmentation
from vibecode.config import Settings
from vibecode.core.artifacts.saver import ArtifactSaver
from vibecode.core.conversation.store import ConversationStore
from vibecode.core.generation.dispatcher import AppGenerationLocks, GenerationDispatcher
from vibecode.core.preview.service import PreviewServer
from vibecode.integrations.ai_client import AIClient
from vibecode.integrations.base import BaseIntegration
from vibecode.integrations.kv_store import InMemoryKVStore, KeyValueStore, RedisKVStore
from vibecode.integrations.storage import ArtifactStorage


@dataclass
class ServiceContainer:
    ai_client: AIClient
    kv_store: KeyValueStore
    storage: ArtifactStorage
    conversations: ConversationStore
    saver: ArtifactSaver
    dispatcher: GenerationDispatcher
    preview: PreviewServer

    @property
    def integrations(self) -> dict[str, BaseIntegration]:
        return {"ai": self.ai_client, "kv_store": self.kv_store, "storage": self.storage}

    async def close(self) -> None:
        for integration in self.integrations.values():
            await integration.close()


def build_container(
    settings: Settings,
    ai_client: AIClient | None = None,
    kv_store: KeyValueStore | None = None,
) -> ServiceContainer:
    """Wire every service once per process; handles are passed explicitly from here on."""
    if kv_store is None:
        if settings.CONVERSATION_BACKEND == "memory":
            kv_store = InMemoryKVStore()
        else:
            kv_store = RedisKVStore(settings.REDIS_URL)

    augment_on_save = HtmlAugmentation(settings.HTML_AUGMENTATION) == HtmlAugmentation.SAVE
    storage = ArtifactStorage(settings.CODE_OUTPUT_ROOT)
    conversations = ConversationStore(
        kv_store,
        ttl_seconds=settings.CONVERSATION_TTL_SECONDS,
        namespace=settings.CONVERSATION_KEY_PREFIX,
        max_messages=settings.CONVERSATION_MAX_MESSAGES,
    )
    saver = ArtifactSaver(storage, augment_html=augment_on_save)
    ai_client = ai_client or AIClient()
    dispatcher = GenerationDispatcher(
        ai_client,
        conversations,
        saver,
        storage,
        locks=AppGenerationLocks(),
        timeout_seconds=settings.AI_TIMEOUT_SECONDS,
        augment_html=augment_on_save,
    )
    return ServiceContainer(
        ai_client=ai_client,
        kv_store=kv_store,
        storage=storage,
        conversations=conversations,
        saver=saver,
        dispatcher=dispatcher,
        preview=PreviewServer(storage),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_dispatcher(request: Request) -> GenerationDispatcher:
    return get_container(request).dispatcher


def get_conversations(request: Request) -> ConversationStore:
    return get_container(request).conversations


def get_storage(request: Request) -> ArtifactStorage:
    return get_container(request).storage


def get_preview(request: Request) -> PreviewServer:
    return get_container(request).preview
