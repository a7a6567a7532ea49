from typing import Dict, Optional

from .log import get_logger
from .transport import SseTransport

logger = get_logger(__name__)


class TransportStore:
    """Live transports keyed by session id.

    The store only tracks transports; it never creates them. Operations are
    not locked: two writers on the same id race and the last one wins.
    """

    def __init__(self):
        self._transports: Dict[str, SseTransport] = {}

    def __len__(self) -> int:
        return len(self._transports)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._transports

    def store(self, session_id: str, transport: SseTransport) -> None:
        self._transports[session_id] = transport

    def get(self, session_id: str) -> Optional[SseTransport]:
        return self._transports.get(session_id)

    def remove(self, session_id: str) -> None:
        """Forget a session; closing its transport is up to the caller."""
        self._transports.pop(session_id, None)

    async def clear(self) -> None:
        """Close every tracked transport, then forget them all."""
        # close() fires on_close, which calls remove() while we iterate
        for session_id, transport in list(self._transports.items()):
            try:
                await transport.close()
            except Exception:
                logger.exception("Error closing transport", session_id=session_id)
        self._transports.clear()
