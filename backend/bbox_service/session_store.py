"""
Frozen row snapshots keyed by session id.

A snapshot is written once when a session starts and only read after
that, so every `next` call paginates over exactly the same ordering.
"""

import asyncio
import json
import logging
import os
import re
from typing import Protocol

from bbox_service.config import Settings
from bbox_service.errors import SessionExistsError, SessionNotFoundError
from bbox_service.models import Row, SessionSnapshot


logger = logging.getLogger(__name__)


_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class SessionStore(Protocol):
    async def put(self, session_id: str, rows: list[Row]) -> None: ...

    async def get(self, session_id: str) -> list[Row]: ...


class FileSessionStore:
    """One JSON file per session under ``directory``."""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, session_id: str) -> str:
        if not _SESSION_ID_RE.match(session_id):
            raise SessionNotFoundError(session_id)
        return os.path.join(self.directory, f"{session_id}.json")

    def _write(self, session_id: str, rows: list[Row]):
        path = self._path(session_id)
        os.makedirs(self.directory, exist_ok=True)
        snapshot = SessionSnapshot(session_id=session_id, rows=rows)
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(snapshot.model_dump_json(by_alias=True))
        except FileExistsError:
            raise SessionExistsError(session_id)

    def _read(self, session_id: str) -> list[Row]:
        path = self._path(session_id)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise SessionNotFoundError(session_id)
        return SessionSnapshot.model_validate(data).rows

    async def put(self, session_id: str, rows: list[Row]) -> None:
        await asyncio.to_thread(self._write, session_id, rows)
        logger.info("[sessions] Stored %s (%d rows)", session_id, len(rows))

    async def get(self, session_id: str) -> list[Row]:
        return await asyncio.to_thread(self._read, session_id)


class SupabaseSessionStore:
    """Snapshots in a Supabase table with columns ``id`` and ``rows`` (jsonb)."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.table = settings.supabase_sessions_table

    def _get_client(self):
        """Get a Supabase client. Raises if credentials are missing."""
        url = self.settings.supabase_url
        key = self.settings.supabase_key
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in .env")
        from supabase import create_client
        return create_client(url, key)

    def _insert(self, session_id: str, rows: list[Row]):
        client = self._get_client()
        existing = client.table(self.table).select("id").eq("id", session_id).execute()
        if existing.data:
            raise SessionExistsError(session_id)
        client.table(self.table).insert({
            "id": session_id,
            "rows": [row.model_dump() for row in rows],
        }).execute()

    def _select(self, session_id: str) -> list[Row]:
        client = self._get_client()
        result = client.table(self.table).select("rows").eq("id", session_id).execute()
        if not result.data:
            raise SessionNotFoundError(session_id)
        return [Row.model_validate(r) for r in result.data[0].get("rows") or []]

    # the supabase client is synchronous
    async def put(self, session_id: str, rows: list[Row]) -> None:
        await asyncio.to_thread(self._insert, session_id, rows)
        logger.info("[sessions] Stored %s (%d rows) in Supabase", session_id, len(rows))

    async def get(self, session_id: str) -> list[Row]:
        return await asyncio.to_thread(self._select, session_id)


def get_session_store(settings: Settings) -> SessionStore:
    if settings.session_backend == "supabase":
        return SupabaseSessionStore(settings)
    if settings.session_backend == "file":
        return FileSessionStore(settings.session_dir)
    raise ValueError(f"Unknown session backend: {settings.session_backend!r}")
