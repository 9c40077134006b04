"""Session files stored as JSON under the working tree."""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import List, Optional

import aiofiles

from agimage.domain.interfaces.stores import SessionStore
from agimage.domain.models.session import Session

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_session_id(session_id: str) -> str:
    return _UNSAFE_CHARS.sub("_", session_id)


class JsonSessionStore(SessionStore):
    """One ``<id>.json`` file per session inside ``<worktree>/<subdir>``."""

    def __init__(self, sessions_dir: Path):
        self.sessions_dir = Path(sessions_dir)

    def _path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{sanitize_session_id(session_id)}.json"

    async def load(self, session_id: str) -> Optional[Session]:
        path = self._path(session_id)
        if not path.is_file():
            return None
        try:
            async with aiofiles.open(path, mode='r', encoding='utf-8') as f:
                return Session.from_dict(json.loads(await f.read()))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable session file {path}: {e}")
            return None

    async def save(self, session: Session) -> None:
        path = self._path(session.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, mode='w', encoding='utf-8') as f:
            await f.write(json.dumps(session.to_dict(), indent=2))
        logger.debug(f"Saved session {session.id} ({len(session.history)} turns) to {path}")

    async def list_ids(self) -> List[str]:
        if not self.sessions_dir.is_dir():
            return []
        files = await asyncio.to_thread(lambda: sorted(self.sessions_dir.glob("*.json")))
        return [f.stem for f in files]

    async def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if not path.is_file():
            return False
        try:
            await asyncio.to_thread(path.unlink)
        except OSError as e:
            logger.warning(f"Could not delete session file {path}: {e}")
            return False
        return True
