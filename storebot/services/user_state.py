import time
from typing import Any, Dict, Optional


class UserStateStore:
    """What each user's next direct message is expected to be.

    Lives in memory only; a restart drops every half-finished flow.
    """

    def __init__(self, ttl_seconds: float = 3600):
        self.ttl_seconds = ttl_seconds
        self._states: Dict[int, Dict[str, Any]] = {}

    def set(self, user_id: int, step: str, **data: Any) -> Dict[str, Any]:
        state = {"step": step, "data": dict(data), "updated_at": time.time()}
        self._states[user_id] = state
        return state

    def get(self, user_id: int) -> Optional[Dict[str, Any]]:
        state = self._states.get(user_id)
        if state is None:
            return None
        if time.time() - state["updated_at"] > self.ttl_seconds:
            del self._states[user_id]
            return None
        return state

    def advance(self, user_id: int, step: str, **data: Any) -> Dict[str, Any]:
        current = self.get(user_id)
        merged = {**(current["data"] if current else {}), **data}
        return self.set(user_id, step, **merged)

    def clear(self, user_id: int) -> None:
        self._states.pop(user_id, None)
