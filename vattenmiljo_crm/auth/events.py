"""Session change notifications with explicit, releasable subscriptions."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from types import TracebackType
from typing import Callable

from vattenmiljo_crm.auth.types import Session

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


SessionCallback = Callable[[SessionEvent, Session | None], None]


class Subscription:
    """Handle returned by subscribe(); release it with unsubscribe() or a with-block."""

    def __init__(self, hub: "SessionEvents", callback: SessionCallback) -> None:
        self._hub = hub
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop receiving notifications. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._hub._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.unsubscribe()


class SessionEvents:
    """Thread-safe registry of session change callbacks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self, callback: SessionCallback) -> Subscription:
        """Register a callback and return its subscription handle."""
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def emit(self, event: SessionEvent, session: Session | None) -> None:
        """Notify every live subscriber; a failing callback does not stop the others."""
        with self._lock:
            targets = list(self._subscriptions)
        for subscription in targets:
            try:
                subscription._callback(event, session)
            except Exception:
                logger.exception("Session listener failed for %s", event.value)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
