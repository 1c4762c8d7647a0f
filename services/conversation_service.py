import time
import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class ConversationService:
    """In-process conversation state keyed by session id. Nothing is persisted."""

    def __init__(self):
        self._conversations: Dict[str, Dict] = {}
        self._lock = threading.Lock()

    def _new_context(self, session_id: str) -> Dict:
        return {
            "session_id": session_id,
            "messages": [],
            "cart_id": None,
            "cart": None,
            "last_products": [],
            "user_preferences": {},
            "current_intent": None,
            "last_activity": datetime.utcnow(),
        }

    def get_context(self, session_id: str) -> Optional[Dict]:
        with self._lock:
            return self._conversations.get(session_id)

    def get_or_create(self, session_id: str) -> Dict:
        with self._lock:
            context = self._conversations.get(session_id)
            if context is None:
                context = self._new_context(session_id)
                self._conversations[session_id] = context
                logger.info(f"💬 New conversation started: {session_id}")
            return context

    def add_message(self, context: Dict, role: str, content: str, metadata: Optional[Dict] = None) -> Dict:
        message = {
            "id": f"msg_{int(time.time() * 1000)}_{role}",
            "role": role,
            "content": content,
            "timestamp": datetime.utcnow().isoformat(),
        }
        if metadata:
            message["metadata"] = metadata

        context["messages"].append(message)
        return message

    def save(self, context: Dict) -> None:
        context["last_activity"] = datetime.utcnow()
        with self._lock:
            self._conversations[context["session_id"]] = context

    def pop(self, session_id: str) -> Optional[Dict]:
        """Remove a conversation and hand back its context"""
        with self._lock:
            removed = self._conversations.pop(session_id, None)
        if removed:
            logger.info(f"💬 Conversation cleared: {session_id}")
        return removed

    def clear(self, session_id: str) -> bool:
        return self.pop(session_id) is not None

    def get_history(self, session_id: str, limit: Optional[int] = None) -> List[Dict]:
        context = self.get_context(session_id)
        if not context:
            return []
        messages = context["messages"]
        return messages[-limit:] if limit else list(messages)

    @staticmethod
    def format_history(context: Dict, limit: int = 10) -> str:
        """Render the last messages as 'role: content' lines for a prompt"""
        return "\n".join(
            f"{m['role']}: {m['content']}" for m in context["messages"][-limit:]
        )

    def expire_conversations(self, max_age_hours: int = 24) -> List[Dict]:
        """
        Drop conversations idle for longer than max_age_hours

        Returns:
            The dropped contexts, so callers can release what they reference
        """
        cutoff = datetime.utcnow() - timedelta(hours=max_age_hours)

        with self._lock:
            stale = [
                session_id for session_id, context in self._conversations.items()
                if context["last_activity"] < cutoff
            ]
            expired = [self._conversations.pop(session_id) for session_id in stale]

        if expired:
            logger.info(f"🧹 Removed {len(expired)} idle conversations")
        return expired

    def cleanup_old_conversations(self, max_age_hours: int = 24) -> int:
        """Number of idle conversations dropped"""
        return len(self.expire_conversations(max_age_hours))

    def session_count(self) -> int:
        with self._lock:
            return len(self._conversations)
