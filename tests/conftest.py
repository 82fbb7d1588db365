import dataclasses
import os
import sys

import pytest

# Ensure project root is importable when the package is not installed
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from setimg import alerts, cli, db, ecr, enrich, oci, rollouts  # noqa: E402
from setimg.settings import settings as _settings  # noqa: E402

_SETTINGS_USERS = (alerts, cli, db, ecr, enrich, oci, rollouts)


@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path):
    """Isolated event journal and default limits for every test."""
    s = dataclasses.replace(
        _settings,
        db_path=str(tmp_path / "events.db"),
        enable_event_log=True,
        poll_interval_s=5,
        watch_timeout_s=300,
        registry_timeout_s=10,
        max_concurrency=10,
        max_enrich_tags=50,
        max_listed_tags=20,
        ecr_max_images=100,
        enable_email=False,
    )
    for mod in _SETTINGS_USERS:
        monkeypatch.setattr(mod, "settings", s)
    monkeypatch.setattr(db, "_schema_ready", set())
    return s


@pytest.fixture
def journal():
    """Messages written to the event journal so far, oldest first."""

    def _read(level=None):
        rows = list(reversed(db.list_events(1000)))
        return [r.message for r in rows if level is None or r.level == level]

    return _read
