"""
Save-debounce gate for a stream of scans.

A camera reports the same code on every frame while it stays in view. The gate
decides which of those detections are persisted to history, which are dropped,
and when the user should be asked whether a long-running rescan of the same
value should be saved again.
"""

from dataclasses import dataclass
from typing import Optional, Union

from app.services.classifier import ScanType, classify

SCAN_DEBOUNCE_INTERVAL = 5000  # ms
RESCAN_CONFIRMATION_THRESHOLD = 10000  # ms


@dataclass
class DebounceState:
    last_saved_value: Optional[str] = None
    last_saved_at_ms: int = 0
    first_seen_at_ms: int = 0
    rescan_prompt_shown: bool = False

    def reset(self, now_ms: int) -> None:
        self.last_saved_value = None
        self.last_saved_at_ms = 0
        self.rescan_prompt_shown = False
        self.first_seen_at_ms = now_ms


@dataclass(frozen=True)
class Persist:
    content: str
    type: ScanType


@dataclass(frozen=True)
class Suppress:
    pass


@dataclass(frozen=True)
class PromptRescan:
    content: str
    type: ScanType


Action = Union[Persist, Suppress, PromptRescan]

SUPPRESS = Suppress()


def _persist(raw: str, scan_type: ScanType, now_ms: int, state: DebounceState) -> Persist:
    state.last_saved_value = raw
    state.last_saved_at_ms = now_ms
    if state.first_seen_at_ms == 0:
        state.first_seen_at_ms = now_ms
    return Persist(raw, scan_type)


def on_scan(
    raw: str,
    now_ms: int,
    state: DebounceState,
    debounce_interval_ms: int = SCAN_DEBOUNCE_INTERVAL,
    rescan_threshold_ms: int = RESCAN_CONFIRMATION_THRESHOLD,
) -> Action:
    """
    Gate one scan.

    A new value always persists. A repeat of the last saved value persists
    again once the debounce interval has passed, unless it has been in view
    longer than the rescan threshold: then the user is prompted once and
    repeats are suppressed until the prompt is answered or cooled down.
    """
    scan_type = classify(raw)

    if raw != state.last_saved_value:
        state.reset(now_ms)
        return _persist(raw, scan_type, now_ms, state)

    if not state.rescan_prompt_shown and now_ms - state.first_seen_at_ms > rescan_threshold_ms:
        state.rescan_prompt_shown = True
        return PromptRescan(raw, scan_type)

    if state.rescan_prompt_shown or now_ms - state.last_saved_at_ms < debounce_interval_ms:
        return SUPPRESS

    return _persist(raw, scan_type, now_ms, state)


def force_persist(raw: str, now_ms: int, state: DebounceState) -> Persist:
    """Accepted rescan prompt: start over and save immediately."""
    state.reset(now_ms)
    return _persist(raw, classify(raw), now_ms, state)


def accept_rescan(raw: str, now_ms: int, state: DebounceState) -> Action:
    """
    Answer yes to a rescan prompt. Only the value currently being prompted for
    is saved; anything else is suppressed.
    """
    if not state.rescan_prompt_shown or raw != state.last_saved_value:
        return SUPPRESS
    return force_persist(raw, now_ms, state)


def clear_rescan_prompt(state: DebounceState) -> None:
    """Declined rescan prompt has cooled down; allow it to be shown again."""
    state.rescan_prompt_shown = False
