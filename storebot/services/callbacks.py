from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..utils.logger import logger

SEPARATOR = ":"
MAX_CALLBACK_LENGTH = 100


@dataclass
class CallbackData:
    namespace: str
    action: str
    args: List[str] = field(default_factory=list)
    raw: str = ""

    def arg(self, index: int = 0, default: Optional[str] = None) -> Optional[str]:
        return self.args[index] if index < len(self.args) else default

    def int_arg(self, index: int = 0, default: int = 0) -> int:
        try:
            return int(self.arg(index, ""))
        except (TypeError, ValueError):
            return default


def parse_callback(raw: Optional[str]) -> Optional[CallbackData]:
    """Split ``namespace:action:arg...``; returns None for anything malformed."""
    if not raw or not isinstance(raw, str) or len(raw) > MAX_CALLBACK_LENGTH:
        return None
    parts = raw.split(SEPARATOR)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    return CallbackData(namespace=parts[0], action=parts[1], args=parts[2:], raw=raw)


def build_callback(*parts: Any) -> str:
    value = SEPARATOR.join(str(part) for part in parts)
    if len(value) > MAX_CALLBACK_LENGTH:
        raise ValueError(f"Callback id too long: {value}")
    return value


Handler = Callable[[Any, CallbackData], Awaitable[None]]
Guard = Callable[[Any, CallbackData, bool], Awaitable[Optional[str]]]


@dataclass
class _Route:
    handler: Handler
    owner_only: bool = False


class CallbackRouter:
    """Dispatches callback ids to the handler registered for their namespace.

    The guard runs before every handler and returns a denial message, or None
    to let the callback through.
    """

    def __init__(self, guard: Optional[Guard] = None):
        self.guard = guard
        self._routes: Dict[str, _Route] = {}

    def register(self, namespace: str, handler: Handler, owner_only: bool = False) -> None:
        if namespace in self._routes:
            logger.warning(f"Callback namespace '{namespace}' re-registered")
        self._routes[namespace] = _Route(handler=handler, owner_only=owner_only)

    def unregister(self, namespace: str) -> None:
        self._routes.pop(namespace, None)

    def handles(self, namespace: str) -> bool:
        return namespace in self._routes

    async def dispatch(self, context: Any, raw: Optional[str]) -> Dict[str, Any]:
        data = parse_callback(raw)
        if data is None:
            return {"handled": False, "reason": "Invalid action"}

        route = self._routes.get(data.namespace)
        if route is None:
            return {"handled": False, "reason": "Unknown action"}

        if self.guard is not None:
            denial = await self.guard(context, data, route.owner_only)
            if denial:
                return {"handled": False, "reason": denial, "denied": True}

        await route.handler(context, data)
        return {"handled": True}
