"""
Shared fixtures: an in-memory SQLite database bound to the session factory,
a clean event bus and reference records for matching.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import src.db.sync_state  # noqa: F401  registers sync_state on Base.metadata
from src.common.events import bus
from src.config.loader import reload_config
from src.db.config import DatabaseConfig, _enable_sqlite_foreign_keys
from src.db.deps import get_session
from src.db.models import Base, Client, SoftwareItem, TeamMember


@pytest.fixture(autouse=True)
def db_engine():
    """Fresh schema per test on a single shared in-memory connection."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    DatabaseConfig.use_engine(engine)
    yield engine
    DatabaseConfig.reset()


@pytest.fixture(autouse=True)
def clean_bus():
    bus.clear()
    yield
    bus.clear()


@pytest.fixture(autouse=True)
def fresh_config():
    reload_config()
    yield
    reload_config()


@pytest.fixture
def upload_dir(tmp_path):
    """Point the upload directory at a temporary path."""
    with (
        patch("src.inbox.documents.get_upload_dir", return_value=tmp_path),
        patch("src.inbox.extraction.get_upload_dir", return_value=tmp_path),
    ):
        yield tmp_path


@pytest.fixture
def captured_events():
    """Collect every published event in order."""
    events = []
    original = bus.publish

    def _capture(event):
        events.append(event)
        original(event)

    with patch.object(bus, "publish", side_effect=_capture):
        yield events


@pytest.fixture
def reference_data():
    """Clients, team members and software items used across tests."""
    with get_session() as session:
        acme = Client(name="Acme Ltd")
        globex = Client(name="Globex Corporation")
        alice = TeamMember(
            name="Alice Smith",
            role="Engineer",
            employment_type="fte",
            default_monthly_cost=Decimal("5000.00"),
        )
        bob = TeamMember(
            name="Bob Jones",
            role="Designer",
            employment_type="contractor",
            default_monthly_cost=Decimal("4000.00"),
            supplier_names=["Jones Design Ltd"],
        )
        zoom = SoftwareItem(
            name="Zoom",
            vendor="Zoom Video",
            vendor_aliases=["ZOOM.US"],
            default_monthly_cost=Decimal("159.00"),
            category="Software etc",
        )
        slack = SoftwareItem(
            name="Slack",
            vendor="Slack Technologies",
            vendor_aliases=[],
            default_monthly_cost=Decimal("120.00"),
            category="Software etc",
        )
        github = SoftwareItem(
            name="GitHub",
            vendor="GitHub Inc",
            vendor_aliases=["GITHUB.COM"],
            default_monthly_cost=Decimal("84.00"),
            allocation_percent=Decimal("50"),
            category="Dev tools",
        )
        session.add_all([acme, globex, alice, bob, zoom, slack, github])
        session.flush()
        return {
            "acme": acme,
            "globex": globex,
            "alice": alice,
            "bob": bob,
            "zoom": zoom,
            "slack": slack,
            "github": github,
        }
