"""pagerescue/resilience/cancellation.py

Cooperative cancellation for one document-level extraction.

Hard cancellation (task.cancel()) also works: CancelledError unwinds the batch
before anything is charged. The token is for callers that want to stop a
document without tearing down the task that owns it, e.g. a "stop" button
handled on another thread while a worker runs the event loop.

A token built with a parent is cancelled when either one is. The fallback
client uses that to stop one batch early without touching the caller's token.
"""

from __future__ import annotations

import threading

from pagerescue.core import ExtractionCancelledError


class CancellationToken:
    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = threading.Event()
        self._parent = parent
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or (self._parent is not None and self._parent.cancelled)

    @property
    def cancelled_by_parent(self) -> bool:
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> str | None:
        if self.cancelled_by_parent:
            return self._parent.reason
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ExtractionCancelledError(
                message=self.reason or "Extraction cancelled by caller",
            )
