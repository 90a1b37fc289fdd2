"""Fire-and-forget propagation of collection snapshots to a remote sink.

The sink is an opaque, unconfirmed boundary: a push either succeeds or the
failure is logged. Nothing is retried and nothing is surfaced to callers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Protocol

from client import RemoteSyncClient
from config import StoreConfig
from db import AsyncKeyValueRepository, storage_key

logger = logging.getLogger("coachlog.sync")


class SyncSink(Protocol):
    async def push(
        self, user_id: str, collection: str, payload: str, revision: Optional[int] = None
    ) -> None: ...

    async def pull(self, user_id: str, collection: str) -> Optional[str]: ...


class LocalNamespaceSink:
    """Mirror collections into ``user_<id>_`` keys of the local store."""

    def __init__(self, storage: AsyncKeyValueRepository) -> None:
        self.storage = storage

    async def push(
        self, user_id: str, collection: str, payload: str, revision: Optional[int] = None
    ) -> None:
        await self.storage.set_item(storage_key(collection, user_id), payload, revision)

    async def pull(self, user_id: str, collection: str) -> Optional[str]:
        return await self.storage.get_item(storage_key(collection, user_id))


class HttpSyncSink:
    """Push snapshots to a remote service through :class:`RemoteSyncClient`."""

    def __init__(self, client: RemoteSyncClient) -> None:
        self.client = client

    async def push(
        self, user_id: str, collection: str, payload: str, revision: Optional[int] = None
    ) -> None:
        await asyncio.to_thread(self.client.push_collection, user_id, collection, payload)

    async def pull(self, user_id: str, collection: str) -> Optional[str]:
        return await asyncio.to_thread(self.client.fetch_collection, user_id, collection)


def build_sink(config: StoreConfig, storage: AsyncKeyValueRepository) -> SyncSink:
    if config.sync_mode == "http":
        if not config.sync_url:
            raise ValueError("sync_url is required when sync_mode is 'http'")
        return HttpSyncSink(
            RemoteSyncClient(config.sync_url, config.sync_api_token, config.sync_timeout)
        )
    return LocalNamespaceSink(storage)


class SyncDispatcher:
    """Sends and fetches user-scoped collection snapshots."""

    def __init__(self, sink: SyncSink) -> None:
        self.sink = sink

    async def sync_collection(
        self, user_id: str, data: Any, collection_name: str, revision: Optional[int] = None
    ) -> bool:
        """Push ``data`` for ``user_id``; returns ``False`` if the push failed."""
        try:
            payload = json.dumps(data)
            await self.sink.push(user_id, collection_name, payload, revision)
        except Exception:
            logger.exception("Error syncing %s for user %s", collection_name, user_id)
            return False
        logger.debug("Synced %s for user %s", collection_name, user_id)
        return True

    async def load_collection(self, user_id: str, collection_name: str) -> Any:
        """Return the remote snapshot for ``collection_name`` or ``None``."""
        try:
            raw = await self.sink.pull(user_id, collection_name)
            return json.loads(raw) if raw else None
        except Exception:
            logger.exception("Error loading %s for user %s", collection_name, user_id)
            return None
