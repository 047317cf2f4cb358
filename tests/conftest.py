"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.database import Database
from alerts.channels import ChannelDispatcher
from alerts.engine import AlertEngine
from alerts.rate_limiter import RateLimiter
from fakes import FakeClock, FakeDetector


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def make_engine(temp_db, detector, clock):
    """Build an AlertEngine over temp_db with fake detector, senders and clock."""
    def _make(email_sender=None, push_sender=None, send_timeout=None, detect_timeout=None):
        dispatcher = ChannelDispatcher(
            notifications=temp_db, contacts=temp_db,
            email_sender=email_sender, push_sender=push_sender,
            send_timeout=send_timeout, clock=clock,
        )
        return AlertEngine(
            rules=temp_db, detector=detector, dispatcher=dispatcher,
            rate_limiter=RateLimiter(temp_db, clock=clock), contacts=temp_db,
            detect_timeout=detect_timeout, clock=clock,
        )
    return _make


@pytest.fixture
def sample_config():
    return {
        "database": {"path": ":memory:"},
        "alerts": {
            "sweep_interval_seconds": 3600, "batch_workers": 2,
            "detect_timeout_seconds": 5, "send_timeout_seconds": 5,
            "pair_timeout_seconds": 10,
        },
        "detector": {"base_url": "http://detector.test/api", "timeout_seconds": 5, "max_retries": 0},
        "email": {"enabled": False},
        "push": {"enabled": False},
        "web": {"host": "127.0.0.1", "port": 5000},
        "logging": {"level": "INFO", "file": None},
    }
