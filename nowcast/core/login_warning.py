"""Rate-limited "Spotify is not logged in" reminders."""
import logging
from typing import Optional

from nowcast.core.clock import Clock, monotonic_ms

logger = logging.getLogger(__name__)


class LoginWarningLimiter:
    """At most max_count warnings, each at least interval_ms after the previous one.

    Independent of the Spotify call budget; reset() after a successful login.
    """

    def __init__(
        self,
        max_count: int,
        interval_ms: int,
        login_url: str = "",
        clock: Clock = monotonic_ms,
    ) -> None:
        self._max_count = max_count
        self._interval_ms = interval_ms
        self._login_url = login_url
        self._clock = clock
        self.count = 0
        self._last_warning_at: Optional[int] = None

    def maybe_warn(self) -> bool:
        """Log a reminder if the budget allows. Returns True when one was logged."""
        if self.count >= self._max_count:
            return False
        now = self._clock()
        if self._last_warning_at is not None and now - self._last_warning_at <= self._interval_ms:
            return False
        self.count += 1
        self._last_warning_at = now
        logger.warning(
            "Spotify is not authenticated (warning %d/%d). Log in at %s; "
            "no track info can be fetched from Spotify until then.",
            self.count,
            self._max_count,
            self._login_url or "/api/spotify/login",
        )
        return True

    def reset(self) -> None:
        self.count = 0
        self._last_warning_at = None
