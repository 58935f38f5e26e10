"""SyncContext - the dependencies shared by the resolver and the write path."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from ..api.client import SheetsClient, SheetsConfig
from ..config import SyncSettings
from ..storage import BlobStorage, SessionData, SessionStore
from .cache import SnapshotCache
from .offline import OfflineStore
from .schema import SchemaMapStore

ClientFactory = Callable[[SheetsConfig], SheetsClient]


@dataclass
class SyncContext:
    """Everything a sync operation needs, owned by the entry point.

    Usage:
        ctx = SyncContext.from_settings(settings)
        data = await TieredResolver(ctx).resolve()
    """

    settings: SyncSettings
    storage: BlobStorage
    sessions: SessionStore
    cache: SnapshotCache
    schema_maps: SchemaMapStore
    offline: OfflineStore
    client_factory: ClientFactory | None = None

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "SyncContext":
        storage = BlobStorage(settings.data_path)
        return cls(
            settings=settings,
            storage=storage,
            sessions=SessionStore(storage),
            cache=SnapshotCache(storage, ttl_seconds=settings.cache_ttl_seconds, clock=clock),
            schema_maps=SchemaMapStore(storage),
            offline=OfflineStore(storage),
            client_factory=client_factory,
        )

    def client(self, config: SheetsConfig) -> SheetsClient:
        if self.client_factory is not None:
            return self.client_factory(config)
        return SheetsClient(
            config,
            base_url=self.settings.sheets_api_base,
            timeout=self.settings.request_timeout_seconds,
        )

    @property
    def spreadsheet_id(self) -> str:
        return self.settings.spreadsheet_id

    def session(self) -> SessionData | None:
        return self.sessions.active()

    def authenticated_config(self, spreadsheet_id: str | None = None) -> SheetsConfig | None:
        session = self.session()
        if session is None:
            return None
        return SheetsConfig(spreadsheet_id or self.spreadsheet_id, access_token=session.access_token)

    def public_config(self, spreadsheet_id: str | None = None) -> SheetsConfig | None:
        if not self.settings.public_read_configured:
            return None
        return SheetsConfig(spreadsheet_id or self.spreadsheet_id, api_key=self.settings.public_api_key)
