import datetime
import threading
import time
from typing import Optional


def now_utc_iso() -> str:
    """
    Current UTC time as an ISO-8601 string, e.g. 2025-01-31T09:12:44+00:00.
    """
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0).isoformat()


class CancelToken:
    """
    Cooperative cancellation for batch loops.

    Checked between units of work (episodes, question triples), never
    mid-call, so everything committed before the check stays valid.
    """

    def __init__(self, deadline_seconds: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + deadline_seconds if deadline_seconds is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def deadline_passed(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.deadline_passed

    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return "cancelled"
        if self.deadline_passed:
            return "deadline exceeded"
        return None
