"""Protocol (interface) definitions for the Usage Engine.

Defines the contracts between the learning components so drift-detection
strategies and notification sinks can be swapped or replaced by test doubles
without coupling to concrete implementations.
"""

from typing import Any, Protocol, runtime_checkable

from aumos_usage_engine.core.models import NotificationRequest


@runtime_checkable
class IDriftDetector(Protocol):
    """Contract shared by every concept drift strategy used by the tree."""

    @property
    def drift(self) -> bool:
        """True only immediately after the most recent update fired."""
        ...

    def update(self, error: float) -> None:
        """Add one outcome (0.0 = correct prediction, 1.0 = error).

        Args:
            error: Binary error indicator for the latest prediction.
        """
        ...

    def reset(self) -> None:
        """Discard all retained outcomes and clear the drift flag."""
        ...

    def get_state(self) -> Any:
        """Return a serialisable snapshot exposing `to_dict()`."""
        ...


@runtime_checkable
class INotificationSink(Protocol):
    """Receiver of one-way overuse notification requests.

    Implementations must not block; delivery policy belongs to the host.
    """

    def notify(self, request: NotificationRequest) -> None:
        """Accept a notification request.

        Args:
            request: Overuse signal emitted by the ensemble voter.
        """
        ...
