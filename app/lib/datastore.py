# app/lib/datastore.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from supabase import Client, create_client

from app.config import config
from app.logger import get_logger

log = get_logger(__name__)

Row = Dict[str, Any]


class SupabaseDatastore:
    """
    Thin row-level wrapper over the Supabase (PostgREST) tables used by the
    story pipeline: insert into stories/images/characters, look up
    background_music by column. Errors from postgrest propagate to the caller,
    which decides whether they are fatal.
    """

    def __init__(self, client: Client):
        self._client = client

    def insert(self, table: str, rows: Union[Row, List[Row]]) -> List[Row]:
        resp = self._client.table(table).insert(rows).execute()
        return list(resp.data or [])

    def select_first(self, table: str, *, column: str, value: Any, columns: str = "id") -> Optional[Row]:
        resp = (
            self._client.table(table)
            .select(columns)
            .eq(column, value)
            .limit(1)
            .execute()
        )
        data = resp.data or []
        return data[0] if data else None


_datastore: Optional[SupabaseDatastore] = None

def get_datastore() -> SupabaseDatastore:
    global _datastore
    if _datastore is None:
        if not config.supabase_url or not config.supabase_service_key:
            raise RuntimeError("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not configured")
        log.info("connecting Supabase datastore")
        _datastore = SupabaseDatastore(create_client(config.supabase_url, config.supabase_service_key))
    return _datastore
