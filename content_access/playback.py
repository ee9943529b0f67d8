"""
Client-side playback session with periodic access revalidation.

State machine:
    loading -> ready -> playing <-> paused -> access_denied | error

``access_denied`` and ``error`` are terminal for the session. Recovering
from them takes a new top-level access check (a new session), not another
revalidation.

The host drives time by calling ``tick()`` from its own timer. At most one
revalidation is in flight per session. A failed check suspends playback
and schedules up to ``max_retries`` retries with a fixed backoff. Running
out of retries ends the session in ``error``; playback never continues on
an unverified entitlement.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable, Optional

from .config import AccessSettings
from .models import RevalidationResult, fail_closed_result

logger = logging.getLogger(__name__)


class PlayerState(str, enum.Enum):
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ACCESS_DENIED = "access_denied"
    ERROR = "error"


TERMINAL_STATES = frozenset({PlayerState.ACCESS_DENIED, PlayerState.ERROR})


class PlaybackStateError(RuntimeError):
    """Raised on a transition the state machine does not allow."""


class PlaybackSession:
    def __init__(
        self,
        content_id: str,
        revalidate: Callable[[str], RevalidationResult],
        *,
        refresh_media_url: Optional[Callable[[str], float]] = None,
        on_access_denied: Optional[Callable[[RevalidationResult], None]] = None,
        settings: Optional[AccessSettings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.content_id = content_id
        self.settings = settings or AccessSettings()
        self.state = PlayerState.LOADING
        self.error: Optional[str] = None
        self.last_result: Optional[RevalidationResult] = None
        self.closed = False

        self._revalidate = revalidate
        self._refresh_media_url = refresh_media_url
        self._on_access_denied = on_access_denied or (lambda result: None)
        self._clock = clock

        self._check_lock = threading.Lock()
        self._next_check_at: Optional[float] = None
        self._retry_at: Optional[float] = None
        self._url_refresh_at: Optional[float] = None
        self._failed_attempts = 0
        self._resume_after_retry = False

    # -- Introspection -----------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def retry_pending(self) -> bool:
        return self._retry_at is not None

    @property
    def failed_attempts(self) -> int:
        return self._failed_attempts

    @property
    def next_check_at(self) -> Optional[float]:
        return self._next_check_at

    @property
    def url_refresh_at(self) -> Optional[float]:
        return self._url_refresh_at

    # -- Loading -----------------------------------------------------------

    def media_loaded(self, url_expires_at: float) -> None:
        """Signed media URL obtained; ``url_expires_at`` is a unix timestamp."""
        self._require(PlayerState.LOADING)
        self.state = PlayerState.READY
        self.schedule_url_refresh(url_expires_at)

    def deny(self, result: Optional[RevalidationResult] = None) -> None:
        """Show the paywall; used when the initial media request is refused."""
        self._terminate(PlayerState.ACCESS_DENIED, result=result)

    def fail(self, message: str) -> None:
        self._terminate(PlayerState.ERROR, message=message)

    # -- Player controls ---------------------------------------------------

    def play(self) -> None:
        if self.retry_pending:
            raise PlaybackStateError("playback is suspended until access is re-verified")
        self._require(PlayerState.READY, PlayerState.PAUSED)
        self.state = PlayerState.PLAYING
        if self._next_check_at is None:
            self._next_check_at = self._clock() + self.settings.max_check_interval

    def pause(self) -> None:
        self._require(PlayerState.PLAYING)
        self.state = PlayerState.PAUSED
        self._resume_after_retry = False

    # -- Timers ------------------------------------------------------------

    def schedule_url_refresh(self, url_expires_at: float) -> None:
        """Refresh the signed URL ``url_refresh_buffer`` seconds before it expires."""
        if self.closed or self.is_terminal:
            return
        self._url_refresh_at = max(self._clock(), url_expires_at - self.settings.url_refresh_buffer)

    def tick(self) -> None:
        """Run whatever is due: a retry, a scheduled check, a URL refresh."""
        if self.closed or self.is_terminal:
            return

        now = self._clock()
        if self._retry_at is not None:
            if now >= self._retry_at:
                self.check_now()
        elif self.state == PlayerState.PLAYING and self._next_check_at is not None and now >= self._next_check_at:
            self.check_now()

        if (
            self.state == PlayerState.PLAYING
            and self._refresh_media_url is not None
            and self._url_refresh_at is not None
            and self._clock() >= self._url_refresh_at
        ):
            self._refresh_url()

    def check_now(self) -> bool:
        """Revalidate immediately. Returns False if a check is already in flight."""
        if self.closed or self.is_terminal:
            return False
        if not self._check_lock.acquire(blocking=False):
            return False
        try:
            try:
                result = self._revalidate(self.content_id)
            except Exception as exc:  # transport failures deny like server errors
                logger.warning(
                    "Revalidation call raised - treating as invalid",
                    extra={"content_id": self.content_id, "error": str(exc), "error_type": type(exc).__name__},
                )
                result = fail_closed_result(self.settings.retry_after, self.settings.max_retries)
            self._apply(result)
            return True
        finally:
            self._check_lock.release()

    def teardown(self) -> None:
        """Cancel every timer; later ticks are no-ops."""
        self.closed = True
        self._clear_timers()

    # -- Internals ---------------------------------------------------------

    def _apply(self, result: RevalidationResult) -> None:
        self.last_result = result
        now = self._clock()

        if result.valid:
            self._failed_attempts = 0
            self._retry_at = None
            if self._resume_after_retry:
                self._resume_after_retry = False
                self.state = PlayerState.PLAYING
            interval = min(max(result.next_check_in, 0), self.settings.max_check_interval)
            self._next_check_at = now + interval
            return

        if not result.retryable:
            self._terminate(PlayerState.ACCESS_DENIED, result=result)
            return

        max_retries = result.max_retries if result.max_retries is not None else self.settings.max_retries
        if self._failed_attempts >= max_retries:
            self._terminate(PlayerState.ERROR, message="Unable to verify access to this content.")
            return

        self._failed_attempts += 1
        self._retry_at = now + (result.retry_after or self.settings.retry_after)
        self._next_check_at = None
        if self.state == PlayerState.PLAYING:
            self.state = PlayerState.PAUSED
            self._resume_after_retry = True
        logger.info(
            "Revalidation failed - playback suspended pending retry",
            extra={"content_id": self.content_id, "attempt": self._failed_attempts, "max_retries": max_retries},
        )

    def _refresh_url(self) -> None:
        try:
            expires_at = self._refresh_media_url(self.content_id)
        except Exception as exc:
            logger.warning(
                "Media URL refresh failed",
                extra={"content_id": self.content_id, "error": str(exc), "error_type": type(exc).__name__},
            )
            self._terminate(PlayerState.ERROR, message="Network error. Please check your connection.")
            return
        self.schedule_url_refresh(expires_at)

    def _terminate(
        self,
        state: PlayerState,
        *,
        result: Optional[RevalidationResult] = None,
        message: Optional[str] = None,
    ) -> None:
        if self.is_terminal:
            return
        self.state = state
        self.error = message
        self._resume_after_retry = False
        self._clear_timers()
        if state == PlayerState.ACCESS_DENIED and result is not None:
            self._on_access_denied(result)

    def _clear_timers(self) -> None:
        self._next_check_at = None
        self._retry_at = None
        self._url_refresh_at = None

    def _require(self, *allowed: PlayerState) -> None:
        if self.closed:
            raise PlaybackStateError("session has been torn down")
        if self.state not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise PlaybackStateError(f"cannot transition from {self.state.value} (expected {expected})")
