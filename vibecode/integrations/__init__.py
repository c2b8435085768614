"""VibeCode integration clients.

All clients implement ``BaseIntegration`` and expose ``health_check()``.
The AI client falls back to deterministic mock output when configured with
a ``mock_`` key.
"""

from vibecode.integrations.ai_client import AIClient
from vibecode.integrations.base import BaseIntegration
from vibecode.integrations.kv_store import InMemoryKVStore, KeyValueStore, RedisKVStore
from vibecode.integrations.storage import ArtifactStorage, StagingArea

__all__ = [
    "AIClient",
    "ArtifactStorage",
    "BaseIntegration",
    "InMemoryKVStore",
    "KeyValueStore",
    "RedisKVStore",
    "StagingArea",
]
