from datetime import datetime

from src.core.clock import TICK, next_after, utcnow
from src.matchmaking.conversation_stream import make_snippet


def test_next_after_keeps_a_clock_that_moved_forward():
    previous = datetime(2025, 1, 1, 12, 0, 0)
    now = datetime(2025, 1, 1, 12, 0, 1)
    assert next_after(now, previous) == now


def test_next_after_bumps_a_repeated_timestamp():
    previous = datetime(2025, 1, 1, 12, 0, 0)
    assert next_after(previous, previous) == previous + TICK


def test_next_after_bumps_past_a_clock_that_went_backwards():
    previous = datetime(2025, 1, 1, 12, 0, 5)
    assert next_after(datetime(2025, 1, 1, 12, 0, 0), previous) == previous + TICK


def test_next_after_without_previous_message():
    now = datetime(2025, 1, 1)
    assert next_after(now, None) == now


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


def test_short_snippet_is_unchanged():
    assert make_snippet("See you at 7", 120) == "See you at 7"


def test_snippet_flattens_whitespace():
    assert make_snippet("line one\n\n  line   two", 120) == "line one line two"


def test_long_snippet_is_truncated_with_ellipsis():
    snippet = make_snippet("word " * 50, 20)
    assert len(snippet) <= 20
    assert snippet.endswith("…")
