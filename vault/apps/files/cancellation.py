"""Cancellation tokens passed through long-running file operations."""

import threading
import time
from datetime import timedelta
from typing import Final, final

from vault.apps.files.exceptions import OperationCancelledError


@final
class CancellationToken:
    """Cooperative cancellation signal with an optional deadline.

    The token is checked at every suspension point (each storage call,
    each sweep step). It never interrupts a call already in flight.
    """

    def __init__(
        self,
        event: threading.Event | None = None,
        deadline: float | None = None,
    ) -> None:
        """Initialize the token.

        Args:
            event: Event that signals cancellation when set.
            deadline: Absolute ``time.monotonic()`` value after which
                the token counts as cancelled.
        """
        self._event = event or threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, timeout: timedelta) -> 'CancellationToken':
        """Create a token that expires after ``timeout``.

        Args:
            timeout: Time budget from now.

        Returns:
            New CancellationToken.
        """
        return cls(deadline=time.monotonic() + timeout.total_seconds())

    @property
    def event(self) -> threading.Event:
        """Underlying event, usable for interruptible waits."""
        return self._event

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def is_cancelled(self) -> bool:
        """Check whether cancellation was requested or the deadline passed.

        Returns:
            True if the operation should stop.
        """
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self) -> None:
        """Stop the current operation if cancelled.

        Raises:
            OperationCancelledError: If cancellation was requested.
        """
        if self.is_cancelled():
            raise OperationCancelledError('Operation cancelled')


# Shared token for callers without a deadline; never cancelled.
NEVER_CANCELLED: Final = CancellationToken()
