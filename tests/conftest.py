"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides temp-file SQLite stores and a wired ObligationService.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ["TIMEZONE"] = "UTC"

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """A fixed 'current time' injected into every time-dependent call."""
    return NOW


@pytest.fixture
def local_timezone():
    """Run a test with TIMEZONE=Asia/Jerusalem (UTC+2, UTC+3 in summer)."""
    from src.config import settings
    with patch.object(settings, "TIMEZONE", "Asia/Jerusalem"):
        yield "Asia/Jerusalem"


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path shared by all stores in a test."""
    return str(tmp_path / "test_life_admin.db")


@pytest.fixture
def obligation_db(tmp_db_path):
    from src.data.db import ObligationDB
    return ObligationDB(db_path=tmp_db_path)


@pytest.fixture
def reminder_db(tmp_db_path):
    from src.data.db import ReminderDB
    return ReminderDB(db_path=tmp_db_path)


@pytest.fixture
def task_db(tmp_db_path):
    from src.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def subscription_db(tmp_db_path):
    from src.data.db import SubscriptionDB
    return SubscriptionDB(db_path=tmp_db_path)


@pytest.fixture
def extractor():
    """LLM extraction stub; tests set return_value to the candidate list."""
    return AsyncMock(return_value=[])


@pytest.fixture
def service(obligation_db, reminder_db, task_db, extractor):
    from src.core.lifecycle import ObligationService
    return ObligationService(
        obligation_db,
        reminder_db,
        task_db,
        extractor=extractor,
        preparation_threshold_days=3,
        due_soon_days=7,
    )


@pytest.fixture
def transport():
    """Push transport stub that reports success by default."""
    from src.ports.notification_port import DeliveryResult
    return AsyncMock(send=AsyncMock(return_value=DeliveryResult.SUCCESS))


@pytest.fixture
def dispatcher(subscription_db, transport):
    from src.core.dispatcher import NotificationDispatcher
    return NotificationDispatcher(subscription_db, transport)
