"""
Cancellation scope shared by the engine and connectors

A Context is cancelled explicitly, when its deadline passes, or when any
ancestor is cancelled. Connectors are expected to check it between API calls
and return promptly once it is cancelled; nothing is interrupted forcibly.
"""
import threading
import time
from typing import Any, Dict, List, Optional

from .exceptions import OperationCancelled

CANCELLED = "cancelled"
DEADLINE_EXCEEDED = "deadline exceeded"

# Upper bound for a single Event.wait so parent cancellation is noticed
_WAIT_SLICE = 0.05


class Context:
    """Cooperative cancellation token with an optional deadline"""

    def __init__(self, timeout: Optional[float] = None, parent: Optional['Context'] = None):
        self._parent = parent
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._warnings: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def child(self, timeout: Optional[float] = None) -> 'Context':
        """Create a context that is cancelled whenever this one is"""
        return Context(timeout=timeout, parent=self)

    def cancel(self, reason: str = CANCELLED) -> None:
        with self._lock:
            if self._reason is None:
                self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> Optional[str]:
        """Why the context is cancelled, or None while it is still live"""
        if self._event.is_set():
            return self._reason
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DEADLINE_EXCEEDED
        if self._parent is not None:
            return self._parent.reason
        return None

    def remaining(self) -> Optional[float]:
        """Seconds until the nearest deadline in the chain, None if unbounded"""
        candidates = []
        if self._deadline is not None:
            candidates.append(max(0.0, self._deadline - time.monotonic()))
        if self._parent is not None:
            parent_remaining = self._parent.remaining()
            if parent_remaining is not None:
                candidates.append(parent_remaining)
        return min(candidates) if candidates else None

    def wait(self, seconds: Optional[float] = None) -> bool:
        """
        Sleep until cancelled or `seconds` elapse.

        Returns:
            True if the context was cancelled while waiting
        """
        end = time.monotonic() + seconds if seconds is not None else None
        while not self.cancelled:
            slice_ = _WAIT_SLICE
            if end is not None:
                left = end - time.monotonic()
                if left <= 0:
                    return False
                slice_ = min(slice_, left)
            self._event.wait(slice_)
        return True

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason or CANCELLED)

    def warn(self, message: str, region: Optional[str] = None,
             resource_type: Optional[str] = None) -> None:
        """Record a non-fatal problem for the provider call running under this context"""
        with self._lock:
            self._warnings.append({
                'message': message,
                'region': region,
                'resource_type': resource_type,
            })

    @property
    def warnings(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._warnings)
