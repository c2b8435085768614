"""Per-application conversation memory on top of an expiring key-value store.

The whole ordered history of an app is stored as one JSON document under
``<prefix>:<app_id>`` and replaced atomically on every update.  Each write
refreshes the TTL, so idle conversations expire on their own.
"""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import ValidationError

from vibecode.common.exceptions import StoreUnavailable
from vibecode.common.logging import get_logger
from vibecode.common.metrics import STORE_DEGRADATIONS
from vibecode.core.conversation.schemas import ConversationEntry, ConversationHistory
from vibecode.integrations.kv_store import KeyValueStore

logger = get_logger("conversation.store")


class ConversationStore:
    def __init__(
        self,
        backend: KeyValueStore,
        ttl_seconds: int,
        namespace: str = "vibecode:chat",
        max_messages: int | None = None,
    ) -> None:
        self._backend = backend
        self._ttl = ttl_seconds
        self._namespace = namespace
        self._max_messages = max_messages
        self.degraded_reads = 0

    def key(self, app_id: int) -> str:
        return f"{self._namespace}:{app_id}"

    async def load(self, app_id: int) -> list[ConversationEntry]:
        """Return the stored history, or an empty list if it cannot be read.

        A missing key, an unreachable backend and a corrupt payload all
        yield ``[]``; the latter two are logged and counted.
        """
        try:
            raw = await self._backend.get(self.key(app_id))
        except Exception as e:
            self._degrade("load", app_id, e)
            return []
        if not raw:
            return []
        try:
            return ConversationHistory.validate_json(raw)
        except ValidationError as e:
            self._degrade("decode", app_id, e)
            return []

    async def replace(self, app_id: int, entries: Sequence[ConversationEntry]) -> None:
        kept = list(entries)
        if self._max_messages and len(kept) > self._max_messages:
            kept = kept[-self._max_messages:]
        payload = ConversationHistory.dump_json(kept).decode("utf-8")
        try:
            await self._backend.set(self.key(app_id), payload, self._ttl)
        except Exception as e:
            logger.error("Conversation write failed | app_id=%s | %s", app_id, e)
            raise StoreUnavailable() from e
        logger.debug("Conversation stored | app_id=%s | messages=%d", app_id, len(kept))

    async def append(self, app_id: int, *entries: ConversationEntry) -> list[ConversationEntry]:
        history = await self.load(app_id)
        history.extend(entries)
        await self.replace(app_id, history)
        return history

    async def clear(self, app_id: int) -> None:
        try:
            await self._backend.delete(self.key(app_id))
        except Exception as e:
            logger.error("Conversation clear failed | app_id=%s | %s", app_id, e)
            raise StoreUnavailable() from e
        logger.info("Conversation cleared | app_id=%s", app_id)

    def _degrade(self, operation: str, app_id: int, error: Exception) -> None:
        self.degraded_reads += 1
        STORE_DEGRADATIONS.labels(operation=operation).inc()
        logger.warning(
            "Conversation history unavailable, continuing with empty context | app_id=%s | op=%s | %s",
            app_id,
            operation,
            error,
        )
