"""Domain models for multi-turn generation sessions."""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from .common import ContentPart

USER_ROLE = "user"
MODEL_ROLE = "model"


@dataclass
class SessionTurn:
    role: str # 'user' or 'model'
    parts: List[ContentPart]


@dataclass
class Session:
    """Conversation history kept across generations for consistent characters and style."""
    id: str
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    history: List[SessionTurn] = field(default_factory=list)

    def add_user_message(self, parts: List[ContentPart]) -> None:
        self.history.append(SessionTurn(role=USER_ROLE, parts=parts))
        self.updated_at = time.time()

    def add_model_message(self, parts: List[ContentPart]) -> None:
        self.history.append(SessionTurn(role=MODEL_ROLE, parts=parts))
        self.updated_at = time.time()

    def contents(self) -> List[Dict[str, Any]]:
        """History in the wire `contents` shape."""
        return [{"role": turn.role, "parts": turn.parts} for turn in self.history]

    def to_dict(self) -> Dict[str, Any]:
        # Stored in milliseconds for compatibility with older session files
        return {
            "id": self.id,
            "createdAt": int(self.created_at * 1000),
            "updatedAt": int(self.updated_at * 1000),
            "history": [asdict(turn) for turn in self.history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        history = [
            SessionTurn(role=turn.get("role", USER_ROLE), parts=list(turn.get("parts") or []))
            for turn in data.get("history") or []
        ]
        return cls(
            id=str(data["id"]),
            created_at=float(data.get("createdAt", 0)) / 1000,
            updated_at=float(data.get("updatedAt", 0)) / 1000,
            history=history,
        )
