# remsync Notification Dispatcher
# Orders live change events and feeds them into the engine once a session is established

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from remsync.sync.errors import RemsyncError
from remsync.transport.wire import Notification

if TYPE_CHECKING:
    from remsync.logger import SyncLogger


class DispatcherState(str, Enum):
    """Dispatcher states."""

    # Session not established, events accumulate in arrival order
    BUFFERING = "buffering"

    # Buffered events being applied, oldest first
    DRAINING = "draining"

    # Each event applied on receipt
    LIVE = "live"


@dataclass
class NotificationFailure:
    """An event whose application failed, or a channel record that didn't parse."""

    notification: Optional[Notification]
    error: str
    error_kind: str
    record: Any = None


class NotificationDispatcher:
    """
    Applies notifications strictly one at a time, in arrival order.

    Receiving and applying share one lock, so an event that arrives while
    the buffer drains waits and is applied after everything buffered
    before it.
    """

    def __init__(
        self,
        apply: Callable[[Notification], None],
        *,
        device_id: Optional[str] = None,
        suppress_self: bool = True,
        logger: Optional["SyncLogger"] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            apply: Called once per event, under the dispatcher lock.
            device_id: This device's id, for recognizing its own events.
            suppress_self: Drop events whose source is this device.
            logger: Optional progress logger.
        """
        self._apply = apply
        self.device_id = device_id
        self.suppress_self = suppress_self
        self.logger = logger
        self._lock = threading.RLock()
        self._buffer: deque[Notification] = deque()
        self.state = DispatcherState.BUFFERING
        self.applied = 0
        self.suppressed = 0
        self.failures: list[NotificationFailure] = []

    @property
    def buffered(self) -> int:
        """Number of events waiting for the session to be established."""
        return len(self._buffer)

    def is_own(self, notification: Notification) -> bool:
        """Check if an event was caused by this device."""
        return bool(self.device_id) and notification.source_device_id == self.device_id

    def receive(self, notification: Notification) -> None:
        """Accept one event. Buffers it unless the dispatcher is live."""
        with self._lock:
            if self.suppress_self and self.is_own(notification):
                self.suppressed += 1
                return
            if self.state == DispatcherState.LIVE:
                self._dispatch(notification)
            else:
                self._buffer.append(notification)

    def drain(self) -> int:
        """
        Apply buffered events oldest first, then go live.

        Returns:
            Number of events drained.
        """
        with self._lock:
            self._set_state(DispatcherState.DRAINING)
            count = 0
            while self._buffer:
                self._dispatch(self._buffer.popleft())
                count += 1
            self._set_state(DispatcherState.LIVE)
            return count

    def reset(self) -> None:
        """Return to buffering, e.g. after the connection dropped."""
        with self._lock:
            self._set_state(DispatcherState.BUFFERING)

    def reject(self, record: Any, error: Exception) -> None:
        """Record a channel message that isn't a valid notification."""
        with self._lock:
            self.failures.append(NotificationFailure(None, str(error), type(error).__name__, record))
        if self.logger:
            self.logger.warning(f"Ignoring malformed notification: {error}")

    def _dispatch(self, notification: Notification) -> None:
        try:
            self._apply(notification)
        except RemsyncError as e:
            self.failures.append(NotificationFailure(notification, e.message, e.kind))
            if self.logger:
                self.logger.error(f"{notification.event.value} {notification.id}: {e.kind}: {e.message}")
            return
        self.applied += 1
        if self.logger:
            self.logger.notification(notification)

    def _set_state(self, state: DispatcherState) -> None:
        if self.state != state:
            self.state = state
            if self.logger:
                self.logger.dispatcher(state)
