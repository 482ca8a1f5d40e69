"""
Scan sessions.

A ScanSession is the lifetime of one scanning screen: it is created when the
screen opens and closed when it goes away. It owns the debounce state for that
screen and turns gate decisions into side effects:

- Persist  -> fire-and-forget write to the history store
- Suppress -> nothing
- PromptRescan -> returned to the client, answered via confirm/decline

All debounce state is touched only from the session's event loop. Scans that
arrive on other threads (a frame analysis worker, for example) go through
submit_threadsafe, which hands them to the loop.

A session uses a single time source: either every scan carries a client
timestamp, or none does and the server clock is read. The choice is made when
the session is opened, or by its first timestamped call.
"""

import asyncio
import concurrent.futures
import logging
import time
import uuid
from collections import OrderedDict, deque
from typing import Callable, Deque, Iterable, List, Optional, Set

from app.config import AppMode, settings
from app.errors import ClockMismatch, QRScannerError, SessionClosed, SessionNotFound
from app.services.debounce import (
    Action,
    DebounceState,
    Persist,
    SUPPRESS,
    PromptRescan,
    accept_rescan,
    clear_rescan_prompt,
    on_scan,
)
from app.services.history_store import build_history_store

logger = logging.getLogger(__name__)

MAX_NOTICES = 20


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class ScanSession:
    def __init__(
        self,
        user_id: Optional[str],
        mode: AppMode,
        store=None,
        profiles=None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], int] = _wall_clock_ms,
        client_clock: Optional[bool] = None,
        debounce_interval_ms: Optional[int] = None,
        rescan_threshold_ms: Optional[int] = None,
    ):
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.mode = mode
        self.store = store if store is not None else build_history_store(mode)
        self.profiles = profiles
        self.state = DebounceState()
        self.clock = clock
        # None until the first call that needs a time pins it
        self.client_clock = client_clock
        self.debounce_interval_ms = (
            settings.scan_debounce_interval_ms if debounce_interval_ms is None else debounce_interval_ms
        )
        self.rescan_threshold_ms = (
            settings.rescan_confirmation_threshold_ms if rescan_threshold_ms is None else rescan_threshold_ms
        )
        self.closed = False

        self._loop = loop or asyncio.get_running_loop()
        self._notices: Deque[str] = deque(maxlen=MAX_NOTICES)
        self._pending: Set[asyncio.Task] = set()
        self._cooldown: Optional[asyncio.TimerHandle] = None
        self._awaiting_answer: Optional[str] = None

        logger.info(f"Scan session {self.id} opened for user {user_id}, offline={mode.offline}")

    def _check_open(self) -> None:
        if self.closed:
            raise SessionClosed()

    def _now(self, now_ms: Optional[int]) -> int:
        supplied = now_ms is not None
        if self.client_clock is None:
            self.client_clock = supplied
        elif self.client_clock != supplied:
            expected = "client timestamps" if self.client_clock else "the server clock"
            raise ClockMismatch(f"This session uses {expected}")
        return now_ms if supplied else self.clock()

    def _dispatch(self, action: Action) -> Action:
        if isinstance(action, Persist):
            task = self._loop.create_task(self._persist(action))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return action

    async def _persist(self, action: Persist) -> None:
        try:
            await asyncio.to_thread(self.store.save, self.user_id, action.content, action.type)
        except QRScannerError as e:
            # Debounce state is not rolled back; the user just gets a notice
            logger.error(f"Session {self.id}: failed to save scan: {e.message}")
            self._notices.append(f"Failed to save scan: {e.message}")
            return

        if self.profiles is not None and not self.mode.offline:
            try:
                await asyncio.to_thread(self.profiles.increment_scan_count, self.user_id)
            except QRScannerError as e:
                logger.warning(f"Session {self.id}: failed to update scan count: {e.message}")

    def _gate(self, value: str, now_ms: int) -> Action:
        if value != self._awaiting_answer:
            self._awaiting_answer = None
        action = on_scan(
            value,
            now_ms,
            self.state,
            debounce_interval_ms=self.debounce_interval_ms,
            rescan_threshold_ms=self.rescan_threshold_ms,
        )
        if isinstance(action, PromptRescan):
            self._awaiting_answer = value
        logger.debug(f"Session {self.id}: {type(action).__name__} for scan of length {len(value)}")
        return self._dispatch(action)

    def handle_scan(self, value: str, now_ms: Optional[int] = None) -> Action:
        """Gate one decoded value. Must be called on the session's loop."""
        self._check_open()
        return self._gate(value, self._now(now_ms))

    def handle_frame(self, values: Iterable[str], now_ms: Optional[int] = None) -> List[Action]:
        """Gate every value decoded from one frame, in order. A frame may hold none."""
        self._check_open()
        now_ms = self._now(now_ms)
        return [self._gate(value, now_ms) for value in values]

    def submit_threadsafe(self, value: str, now_ms: Optional[int] = None) -> concurrent.futures.Future:
        """Hand a scan from another thread to the session's loop."""

        async def _run() -> Action:
            return self.handle_scan(value, now_ms)

        return asyncio.run_coroutine_threadsafe(_run(), self._loop)

    def confirm_rescan(self, value: str, now_ms: Optional[int] = None) -> Action:
        """
        User chose to save the rescanned value again. Without an unanswered
        prompt for exactly this value nothing is saved.
        """
        self._check_open()
        now_ms = self._now(now_ms)
        if value != self._awaiting_answer:
            logger.warning(f"Session {self.id}: rescan confirmation without a pending prompt")
            return SUPPRESS

        self._awaiting_answer = None
        self._cancel_cooldown()
        action = accept_rescan(value, now_ms, self.state)
        logger.info(f"Session {self.id}: rescan confirmed, forcing save")
        return self._dispatch(action)

    def decline_rescan(self) -> None:
        """User declined; let the prompt come back after the confirmation threshold."""
        self._check_open()
        self._awaiting_answer = None
        self._cancel_cooldown()
        self._cooldown = self._loop.call_later(
            self.rescan_threshold_ms / 1000, self._end_cooldown
        )

    def _end_cooldown(self) -> None:
        self._cooldown = None
        if not self.closed:
            clear_rescan_prompt(self.state)

    def _cancel_cooldown(self) -> None:
        if self._cooldown is not None:
            self._cooldown.cancel()
            self._cooldown = None

    def drain_notices(self) -> List[str]:
        notices = list(self._notices)
        self._notices.clear()
        return notices

    async def wait_idle(self) -> None:
        """Wait for in-flight history writes; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._awaiting_answer = None
        self._cancel_cooldown()
        logger.info(f"Scan session {self.id} closed")


class SessionRegistry:
    """
    Open sessions by id, least recently used first. Sessions idle longer than
    idle_timeout_s, or beyond max_sessions, are closed and dropped.
    """

    def __init__(
        self,
        idle_timeout_s: Optional[float] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_timeout_s = settings.session_idle_timeout_s if idle_timeout_s is None else idle_timeout_s
        self.max_sessions = settings.max_sessions if max_sessions is None else max_sessions
        self.clock = clock
        self._sessions: "OrderedDict[str, tuple[ScanSession, float]]" = OrderedDict()

    def _evict(self) -> None:
        now = self.clock()
        while self._sessions:
            session_id, (session, last_used) = next(iter(self._sessions.items()))
            idle = now - last_used > self.idle_timeout_s
            if not idle and len(self._sessions) <= self.max_sessions:
                break
            del self._sessions[session_id]
            session.close()
            reason = "idle" if idle else "over capacity"
            logger.info(f"Scan session {session_id} evicted ({reason})")

    def open(self, user_id: Optional[str], mode: AppMode, **kwargs) -> ScanSession:
        session = ScanSession(user_id, mode, **kwargs)
        self._sessions[session.id] = (session, self.clock())
        self._evict()
        return session

    def get(self, session_id: str) -> ScanSession:
        self._evict()
        entry = self._sessions.get(session_id)
        if entry is None:
            raise SessionNotFound(session_id)
        session = entry[0]
        self._sessions[session_id] = (session, self.clock())
        self._sessions.move_to_end(session_id)
        return session

    def close(self, session_id: str) -> ScanSession:
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            raise SessionNotFound(session_id)
        entry[0].close()
        return entry[0]

    async def close_all(self) -> None:
        sessions = [session for session, _ in self._sessions.values()]
        self._sessions.clear()
        for session in sessions:
            session.close()
            await session.wait_idle()

    def __len__(self) -> int:
        return len(self._sessions)


registry = SessionRegistry()
