"""Time-boxed snapshot cache (one blob for leads and configuration)."""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..models import DataSource, SystemData
from ..storage import BlobStorage

logger = logging.getLogger(__name__)

CACHE_KEY = "leads_cache"
DEFAULT_TTL_SECONDS = 15 * 60


class SnapshotCache:
    """Serves the last cloud snapshot while it is younger than the TTL.

    The blob is ``{timestamp, spreadsheet_id, data}``. A snapshot taken from a
    different spreadsheet is never served.
    """

    def __init__(
        self,
        storage: BlobStorage,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def age(self) -> float | None:
        """Seconds since the cached snapshot was written, or None."""
        blob = self.storage.load(CACHE_KEY)
        if not isinstance(blob, dict) or "timestamp" not in blob:
            return None
        return self.clock() - float(blob["timestamp"])

    def get(self, spreadsheet_id: str) -> SystemData | None:
        blob = self.storage.load(CACHE_KEY)
        if not isinstance(blob, dict):
            return None
        if blob.get("spreadsheet_id") != spreadsheet_id:
            return None

        try:
            age = self.clock() - float(blob["timestamp"])
            if age >= self.ttl_seconds:
                logger.debug("Cache expired (%.0fs old)", age)
                return None
            data = SystemData.from_dict(blob["data"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable cache blob: %s", e)
            return None

        return data.tagged(DataSource.CACHE, read_only=data.read_only)

    def put(self, spreadsheet_id: str, data: SystemData) -> None:
        self.storage.save(
            CACHE_KEY,
            {
                "timestamp": self.clock(),
                "spreadsheet_id": spreadsheet_id,
                "data": data.to_dict(),
            },
        )

    def invalidate(self) -> None:
        self.storage.remove(CACHE_KEY)
