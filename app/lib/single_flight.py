# app/lib/single_flight.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from app.logger import get_logger

log = get_logger(__name__)


@dataclass
class FlightHandle:
    """Cancellation handle for one in-flight generation request."""

    request_id: str
    on_cancel: Optional[Callable[[str], None]] = None
    cancelled: bool = field(default=False, init=False)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self.on_cancel:
            try:
                self.on_cancel(self.request_id)
            except Exception as e:
                # the new request must still be registered
                log.warning(f"[{self.request_id}] cancel hook failed: {e}")


class SingleFlightRegistry:
    """
    At most one live generation per user. Starting a new one supersedes
    (cancels) the previous handle. Cancelling means "stop listening": the
    hook marks the old job cancelled, it does not kill in-flight API calls.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._flights: Dict[str, FlightHandle] = {}

    def supersede(self, user_id: str, handle: FlightHandle) -> Optional[FlightHandle]:
        with self._lock:
            previous = self._flights.get(user_id)
            self._flights[user_id] = handle
        if previous is not None and previous.request_id != handle.request_id:
            log.info(f"[{previous.request_id}] superseded by {handle.request_id} for user {user_id}")
            previous.cancel()
            return previous
        return None

    def release(self, user_id: str, request_id: str) -> bool:
        with self._lock:
            current = self._flights.get(user_id)
            if current is None or current.request_id != request_id:
                return False
            del self._flights[user_id]
            return True

    def current(self, user_id: str) -> Optional[FlightHandle]:
        with self._lock:
            return self._flights.get(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._flights)
