import unittest

from app.services.classifier import ScanType
from app.services.debounce import (
    SCAN_DEBOUNCE_INTERVAL,
    DebounceState,
    Persist,
    PromptRescan,
    Suppress,
    accept_rescan,
    clear_rescan_prompt,
    force_persist,
    on_scan,
)

T0 = 1_700_000_000_000
URL = "https://example.com"


class TestOnScan(unittest.TestCase):
    def setUp(self):
        self.state = DebounceState()

    def test_first_scan_persists(self):
        action = on_scan(URL, T0, self.state)
        self.assertEqual(action, Persist(URL, ScanType.URL))
        self.assertEqual(self.state.last_saved_value, URL)
        self.assertEqual(self.state.last_saved_at_ms, T0)
        self.assertEqual(self.state.first_seen_at_ms, T0)

    def test_repeat_within_interval_is_suppressed(self):
        self.assertIsInstance(on_scan(URL, T0, self.state), Persist)
        self.assertIsInstance(on_scan(URL, T0 + 1000, self.state), Suppress)

    def test_repeat_after_interval_persists_again(self):
        on_scan(URL, T0, self.state)
        action = on_scan(URL, T0 + SCAN_DEBOUNCE_INTERVAL + 1000, self.state)
        self.assertIsInstance(action, Persist)
        self.assertEqual(self.state.last_saved_at_ms, T0 + 6000)
        # Still the same continuous sighting
        self.assertEqual(self.state.first_seen_at_ms, T0)

    def test_long_rescan_prompts(self):
        self.assertIsInstance(on_scan(URL, T0, self.state), Persist)
        action = on_scan(URL, T0 + 11000, self.state)
        self.assertEqual(action, PromptRescan(URL, ScanType.URL))
        self.assertTrue(self.state.rescan_prompt_shown)

    def test_continuous_stream_prompts_after_threshold(self):
        actions = [on_scan(URL, T0 + t, self.state) for t in range(0, 12000, 1000)]
        persisted = [t for t, a in zip(range(0, 12000, 1000), actions) if isinstance(a, Persist)]
        self.assertEqual(persisted, [0, 5000, 10000])
        self.assertIsInstance(actions[-1], PromptRescan)
        self.assertEqual(sum(isinstance(a, PromptRescan) for a in actions), 1)

    def test_prompt_is_shown_once(self):
        on_scan(URL, T0, self.state)
        on_scan(URL, T0 + 11000, self.state)
        self.assertIsInstance(on_scan(URL, T0 + 11500, self.state), Suppress)
        self.assertIsInstance(on_scan(URL, T0 + 30000, self.state), Suppress)

    def test_different_value_resets_and_persists(self):
        on_scan(URL, T0, self.state)
        on_scan(URL, T0 + 11000, self.state)
        action = on_scan("hello world", T0 + 11001, self.state)
        self.assertEqual(action, Persist("hello world", ScanType.TEXT))
        self.assertFalse(self.state.rescan_prompt_shown)
        self.assertEqual(self.state.first_seen_at_ms, T0 + 11001)

    def test_alternating_values_always_persist(self):
        for i, value in enumerate(["a", "b", "a", "b"]):
            self.assertIsInstance(on_scan(value, T0 + i, self.state), Persist)

    def test_custom_intervals(self):
        on_scan(URL, T0, self.state, debounce_interval_ms=100, rescan_threshold_ms=1000)
        self.assertIsInstance(
            on_scan(URL, T0 + 150, self.state, debounce_interval_ms=100, rescan_threshold_ms=1000),
            Persist,
        )

    def test_empty_value_is_gated_like_any_other(self):
        self.assertEqual(on_scan("", T0, self.state), Persist("", ScanType.TEXT))
        self.assertIsInstance(on_scan("", T0 + 10, self.state), Suppress)


class TestRescanAnswers(unittest.TestCase):
    def setUp(self):
        self.state = DebounceState()
        on_scan(URL, T0, self.state)
        on_scan(URL, T0 + 11000, self.state)

    def test_force_persist_resets_state(self):
        action = force_persist(URL, T0 + 12000, self.state)
        self.assertEqual(action, Persist(URL, ScanType.URL))
        self.assertFalse(self.state.rescan_prompt_shown)
        self.assertEqual(self.state.first_seen_at_ms, T0 + 12000)
        self.assertEqual(self.state.last_saved_at_ms, T0 + 12000)
        self.assertIsInstance(on_scan(URL, T0 + 12500, self.state), Suppress)

    def test_cleared_prompt_can_reappear(self):
        clear_rescan_prompt(self.state)
        self.assertIsInstance(on_scan(URL, T0 + 21000, self.state), PromptRescan)

    def test_accept_saves_prompted_value(self):
        self.assertEqual(accept_rescan(URL, T0 + 12000, self.state), Persist(URL, ScanType.URL))
        self.assertFalse(self.state.rescan_prompt_shown)

    def test_accept_without_prompt_is_suppressed(self):
        state = DebounceState()
        on_scan(URL, T0, state)
        for i in range(5):
            self.assertIsInstance(accept_rescan(URL, T0 + 100 * i, state), Suppress)
        self.assertEqual(state.last_saved_at_ms, T0)

    def test_accept_for_other_value_is_suppressed(self):
        self.assertIsInstance(accept_rescan("other", T0 + 12000, self.state), Suppress)
        self.assertTrue(self.state.rescan_prompt_shown)


if __name__ == "__main__":
    unittest.main()
