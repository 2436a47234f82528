"""Notification sinks for overuse votes.

The engine never delivers notifications itself. It hands a
NotificationRequest to a sink and moves on; the host decides whether, when
and how to tell the user. `NotificationOutbox` is the sink used behind the
HTTP API: a bounded queue the host drains by polling.
"""

from collections import deque

from aumos_usage_engine.core.models import NotificationRequest
from aumos_usage_engine.observability import get_logger

logger = get_logger(__name__)


class NotificationOutbox:
    """Bounded in-memory queue of pending notification requests.

    When full, the oldest pending request is dropped to make room.

    Args:
        max_size: Maximum number of pending requests.
    """

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._pending: deque[NotificationRequest] = deque(maxlen=max_size)
        self._dropped = 0

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def dropped(self) -> int:
        """Requests discarded because the outbox was full."""
        return self._dropped

    def notify(self, request: NotificationRequest) -> None:
        """Queue a request for the host."""
        if len(self._pending) == self._pending.maxlen:
            self._dropped += 1
            logger.debug("Notification outbox full, oldest request dropped", subject_id=request.subject_id)
        self._pending.append(request)

    def drain(self) -> list[NotificationRequest]:
        """Remove and return all pending requests, oldest first."""
        drained = list(self._pending)
        self._pending.clear()
        return drained
