"""Core service for multi-turn generation sessions."""

import logging
from typing import Any, Dict, List

from agimage.domain.interfaces.stores import SessionStore
from agimage.domain.models.session import Session, SessionTurn
from agimage.infrastructure.api.request_builder import build_model_response_content

logger = logging.getLogger(__name__)


class SessionService:
    """Loads history for a request and appends each successful exchange."""

    def __init__(self, store: SessionStore):
        self.store = store

    async def history(self, session_id: str) -> List[SessionTurn]:
        """Prior turns of the session; empty for a new session."""
        session = await self.store.load(session_id)
        return list(session.history) if session else []

    async def record_exchange(self, session_id: str, prompt: str, candidates: List[Dict[str, Any]]) -> Session:
        """Appends the user prompt and the model's reply, then saves.

        Only the prompt text is stored for the user turn; reference images
        would make session files very large.
        """
        session = await self.store.load(session_id) or Session(id=session_id)
        session.add_user_message([{"text": prompt}])
        model_parts = build_model_response_content(candidates)
        if model_parts:
            session.add_model_message(model_parts)
        await self.store.save(session)
        logger.info(f"Session {session_id} now has {len(session.history)} turn(s)")
        return session

    async def list(self) -> List[str]:
        return await self.store.list_ids()

    async def delete(self, session_id: str) -> bool:
        deleted = await self.store.delete(session_id)
        if deleted:
            logger.info(f"Deleted session {session_id}")
        return deleted
