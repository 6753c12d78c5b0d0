"""Request-scoped time budget shared by the outbound calls of one verification."""
import time
from typing import Optional

from server.core.service.receipt_verification.exceptions import DeadlineExceededError


class Deadline:
    """Tracks how much of a caller supplied timeout is left. ``None`` means unbounded."""

    def __init__(self, timeout: Optional[float]):
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    @property
    def bounded(self) -> bool:
        return self._expires_at is not None

    def remaining(self) -> Optional[float]:
        """
        Seconds left before the deadline.

        Raises:
            DeadlineExceededError: If the budget is used up
        """
        if self._expires_at is None:
            return None
        left = self._expires_at - time.monotonic()
        if left <= 0:
            raise DeadlineExceededError("Verification deadline exceeded")
        return left
