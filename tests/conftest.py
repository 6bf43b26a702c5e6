import pytest
import sys
import os

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Tests never talk to OpenAI; the text helpers fall back to fixed text
os.environ["OPENAI_API_KEY"] = ""
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_friendfind.db")

# Import fixtures so they're available to all tests
from tests.fixtures.database import (
    test_engine,
    test_session_maker,
    test_session,
)

from tests.fixtures.engine import (
    frozen_clock,
    alert_delivery,
    match_engine,
    profiles,
    matched_pair,
)


# Configure pytest
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "matching: tests related to votes and match creation"
    )
    config.addinivalue_line(
        "markers", "conversation: tests related to ordered conversations and read cursors"
    )
    config.addinivalue_line(
        "markers", "meetups: tests related to meetup proposals"
    )
    config.addinivalue_line(
        "markers", "access: tests related to unmatching, blocking and discovery"
    )
    config.addinivalue_line(
        "markers", "push: tests related to subscriptions and pushed state"
    )
    config.addinivalue_line(
        "markers", "safety: tests related to safety alerts and reports"
    )
