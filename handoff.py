"""
Unbuffered synchronous hand-off between two threads.

A producer calling ``put`` blocks until a consumer has taken the item, the
same contract as an unbuffered channel. At most one item is in flight. If a
``put`` times out or the hand-off is closed before the item was taken, the
item is retracted, so a consumer can never receive it afterwards.
"""

import threading
import time
from typing import Any, Optional

_EMPTY = object()


class Handoff:
    """Single-slot rendezvous for passing items between threads."""

    def __init__(self, name: str = ""):
        self.name = name
        self._cond = threading.Condition()
        self._item: Any = _EMPTY
        self._put_seq = 0
        self._taken_seq = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item: Any, timeout: Optional[float] = None) -> bool:
        """Offer ``item`` and wait until a consumer takes it.

        Returns True once the item was taken, False on timeout or close.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            # Wait for the slot if another producer is mid hand-off.
            while self._item is not _EMPTY and not self._closed:
                if not self._wait(deadline):
                    return False
            if self._closed:
                return False

            self._item = item
            self._put_seq += 1
            seq = self._put_seq
            self._cond.notify_all()

            while self._taken_seq < seq:
                if self._closed or not self._wait(deadline):
                    if self._taken_seq < seq:
                        self._item = _EMPTY
                        self._cond.notify_all()
                        return False
            return True

    def take(self, timeout: Optional[float] = None) -> Any:
        """Wait for an item. Returns None on timeout or close."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._item is _EMPTY:
                if self._closed or not self._wait(deadline):
                    return None
            item = self._item
            self._item = _EMPTY
            self._taken_seq = self._put_seq
            self._cond.notify_all()
            return item

    def poll(self) -> Any:
        """Take an item if one is waiting, otherwise return None immediately."""
        return self.take(timeout=0)

    def close(self):
        """Release every waiting producer and consumer."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def _wait(self, deadline: Optional[float]) -> bool:
        if deadline is None:
            self._cond.wait()
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        self._cond.wait(remaining)
        return True
