"""Schema-tolerant sync engine.

Usage:
    from leadsheet.config import settings
    from leadsheet.sync import LeadWriter, SyncContext, TieredResolver

    ctx = SyncContext.from_settings(settings)
    data = await TieredResolver(ctx).resolve()
    await LeadWriter(ctx).update_lead(data.leads[0])
"""

from .cache import SnapshotCache
from .codec import calculate_priority, decode_lead, decode_tables, encode_lead
from .context import SyncContext
from .offline import OfflineStore, load_reference
from .resolver import TieredResolver
from .schema import SchemaMap, SchemaMapStore, SchemaReport, diagnose, normalize_header
from .writer import LeadWriter, next_lead_id

__all__ = [
    "LeadWriter",
    "OfflineStore",
    "SchemaMap",
    "SchemaMapStore",
    "SchemaReport",
    "SnapshotCache",
    "SyncContext",
    "TieredResolver",
    "calculate_priority",
    "decode_lead",
    "decode_tables",
    "diagnose",
    "encode_lead",
    "load_reference",
    "next_lead_id",
    "normalize_header",
]
