"""
Single-slot approval rendezvous between the session loop and an approver.

The loop opens a slot for one tool call id and awaits the returned future;
the approver (UI thread, script, test) calls submit() from any thread. An
answer is accepted only for the id currently pending, so a late or duplicate
answer can never resolve a different call.
"""

import asyncio
import logging
import threading
from typing import Optional

from .events import ToolAnswer

logger = logging.getLogger(__name__)


class ApprovalError(RuntimeError):
    """A second approval was requested while one is still pending."""


class ApprovalGate:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending_id: Optional[str] = None
        self._future: Optional["asyncio.Future[bool]"] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def pending_id(self) -> Optional[str]:
        with self._lock:
            return self._pending_id

    def open(self, call_id: str) -> "asyncio.Future[bool]":
        """Reserve the slot for call_id. Must be called on the session's event loop."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._pending_id is not None:
                raise ApprovalError(
                    f"approval for {call_id!r} requested while {self._pending_id!r} is still pending"
                )
            self._pending_id = call_id
            self._future = loop.create_future()
            self._loop = loop
            return self._future

    def submit(self, answer: ToolAnswer) -> bool:
        """Deliver an answer from any thread. Returns False if it matches no pending request."""
        with self._lock:
            if self._pending_id is None or answer.id != self._pending_id:
                logger.warning(
                    f"Ignoring answer for {answer.id!r}; pending request is {self._pending_id!r}"
                )
                return False
            future, loop = self._future, self._loop
            self._pending_id = None

        def _resolve() -> None:
            if not future.done():
                future.set_result(bool(answer.approved))

        try:
            loop.call_soon_threadsafe(_resolve)
        except RuntimeError:
            logger.warning(f"Event loop closed before answer for {answer.id!r} could be delivered")
            return False
        return True

    def close(self) -> None:
        """Release the slot (after an answer, or when the wait was abandoned)."""
        with self._lock:
            future = self._future
            self._pending_id = None
            self._future = None
            self._loop = None
        if future is not None and not future.done():
            future.cancel()
