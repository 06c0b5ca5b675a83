from __future__ import annotations

import asyncio
from typing import Callable, Optional

DEFAULT_DEBOUNCE_SECONDS = 0.3


class DebouncedSearchFeed:
    """Turns raw search keystrokes into committed search terms.

    Each ``push`` cancels the pending timer and starts a new one; the
    callback only sees the value of a keystroke whose timer ran out
    undisturbed. Must be used from the thread running the event loop.
    """

    def __init__(
        self,
        on_commit: Callable[[str], None],
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.on_commit = on_commit
        self.delay = delay
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[str] = None
        self.committed: Optional[str] = None

    @property
    def pending(self) -> Optional[str]:
        """Value typed but not yet committed, if any."""
        return self._pending if self._handle is not None else None

    def push(self, text: str) -> None:
        self._cancel_timer()
        self._pending = text
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def flush(self) -> bool:
        """Commit the pending value now. Returns False if nothing was pending."""
        if self._handle is None:
            return False
        self._cancel_timer()
        self._commit()
        return True

    def cancel(self) -> None:
        self._cancel_timer()
        self._pending = None

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._commit()

    def _commit(self) -> None:
        value = self._pending or ""
        self._pending = None
        self.committed = value
        self.on_commit(value)
