# ruff: noqa: INP001
"""Pytest configuration shared across backend tests."""

import os
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Import-time settings (and the module-level app in `taskboard.main`) must not
# point at a developer Postgres instance. The file is never opened: tests
# build their own engines against `tmp_path` databases.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'taskboard-import.db'}"
)
os.environ["DB_AUTO_MIGRATE"] = "false"
