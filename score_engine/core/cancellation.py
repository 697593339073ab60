"""Cooperative cancellation for long-running stages."""

import threading
from typing import Optional

from ..errors import AnalysisCancelled


class CancellationToken:
    """
    Caller-owned cancellation signal.

    Stages call ``raise_if_cancelled()`` between processing chunks; the
    caller calls ``cancel()`` from any thread to abort the run.
    """

    def __init__(self, event: Optional[threading.Event] = None):
        self._event = event or threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: Optional[str] = None) -> None:
        if self.cancelled:
            where = f" during {stage}" if stage else ""
            raise AnalysisCancelled(f"Analysis cancelled{where}", stage=stage)


class LinkedCancellationToken(CancellationToken):
    """Cancelled when either it or its parent is cancelled."""

    def __init__(self, parent: Optional[CancellationToken] = None):
        super().__init__()
        self.parent = parent

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.parent is not None and self.parent.cancelled


def check_cancelled(token: Optional[CancellationToken], stage: str) -> None:
    """Raise AnalysisCancelled if a token is given and has been cancelled."""
    if token is not None:
        token.raise_if_cancelled(stage)
