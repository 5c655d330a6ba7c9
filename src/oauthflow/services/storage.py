"""Session-scoped storage for flow state that must survive a reload.

PKCE material is the only state crossing a suspension boundary. It is kept
under a single key per session, so one session has at most one pending flow.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

import aiofiles

from oauthflow.models.errors import ValidationError
from oauthflow.models.security import PkceMaterial

logger = logging.getLogger(__name__)

PKCE_STORAGE_KEY = "pkceData"

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class SessionStore(Protocol):
    """Key-value store scoped by session id.

    Values are JSON-compatible dictionaries.
    """

    async def get(self, session_id: str, key: str) -> dict[str, Any] | None: ...

    async def set(self, session_id: str, key: str, value: dict[str, Any]) -> None: ...

    async def clear(self, session_id: str, key: str) -> None: ...


class InMemorySessionStore:
    """Process-local session store.

    Values are kept as JSON text so callers never share mutable state with
    the store, the same as with a persistent backend.
    """

    def __init__(self):
        self._data: dict[str, dict[str, str]] = {}

    async def get(self, session_id: str, key: str) -> dict[str, Any] | None:
        raw = self._data.get(session_id, {}).get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, session_id: str, key: str, value: dict[str, Any]) -> None:
        self._data.setdefault(session_id, {})[key] = json.dumps(value)

    async def clear(self, session_id: str, key: str) -> None:
        session = self._data.get(session_id)
        if session is None:
            return
        session.pop(key, None)
        if not session:
            del self._data[session_id]


class FileSessionStore:
    """Session store keeping one JSON file per session in a directory.

    Files are written atomically with owner-only permissions.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._lock = asyncio.Lock()

    def _path(self, session_id: str) -> Path:
        if not _SESSION_ID_PATTERN.match(session_id):
            raise ValidationError(f"Invalid session id: {session_id!r}")
        return self.directory / f"{session_id}.json"

    async def _load(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            async with aiofiles.open(path) as f:
                content = await f.read()
            data = json.loads(content)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load session store from {path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed session store at {path}")
            return {}
        return data

    async def _save(self, path: Path, data: dict[str, Any]) -> None:
        if not data:
            path.unlink(missing_ok=True)
            return

        self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)

        # Write to temp file first for atomic replace
        temp_path = path.with_suffix(".tmp")
        async with aiofiles.open(temp_path, "w") as f:
            await f.write(json.dumps(data, indent=2))

        temp_path.chmod(0o600)
        temp_path.replace(path)

    async def get(self, session_id: str, key: str) -> dict[str, Any] | None:
        path = self._path(session_id)
        async with self._lock:
            data = await self._load(path)
        return data.get(key)

    async def set(self, session_id: str, key: str, value: dict[str, Any]) -> None:
        path = self._path(session_id)
        async with self._lock:
            data = await self._load(path)
            data[key] = value
            await self._save(path, data)

    async def clear(self, session_id: str, key: str) -> None:
        path = self._path(session_id)
        async with self._lock:
            data = await self._load(path)
            if key not in data:
                return
            del data[key]
            await self._save(path, data)


class PkceStore:
    """Reads and writes PKCE material for one session."""

    def __init__(self, store: SessionStore, session_id: str):
        self._store = store
        self.session_id = session_id

    async def load(self) -> PkceMaterial | None:
        """Load persisted material, or None if absent or unreadable.

        Unreadable material is cleared so it can't be picked up again.
        """
        data = await self._store.get(self.session_id, PKCE_STORAGE_KEY)
        if data is None:
            return None

        try:
            return PkceMaterial.from_storage(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable PKCE data for session: {e}")
            await self.clear()
            return None

    async def save(self, material: PkceMaterial) -> None:
        await self._store.set(self.session_id, PKCE_STORAGE_KEY, material.to_storage())

    async def clear(self) -> None:
        await self._store.clear(self.session_id, PKCE_STORAGE_KEY)
