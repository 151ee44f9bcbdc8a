"""Simple in-memory store for advisor chat sessions."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, DefaultDict, Dict, List, Optional

from .schemas import ChatMessage


class ChatMemory:
    """Persist per-session chat turns so the UI can replay a conversation."""

    def __init__(self) -> None:
        self._store: DefaultDict[str, List[ChatMessage]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatMessage:
        """Record one message for the given session."""

        message = ChatMessage(role=role, content=content, metadata=metadata or {})
        with self._lock:
            self._store[session_id].append(message)
        return message

    def history(self, session_id: str) -> List[ChatMessage]:
        """Return a shallow copy of the session's messages in insertion order."""

        with self._lock:
            return list(self._store.get(session_id, []))

    def clear(self, session_id: str | None = None) -> None:
        with self._lock:
            if session_id is None:
                self._store.clear()
            else:
                self._store.pop(session_id, None)


chat_memory = ChatMemory()
