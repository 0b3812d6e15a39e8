# Ensure the `mastering` package is importable without installing it
from __future__ import annotations

import sys
import tempfile
from pathlib import Path

# Add the backend directory to PYTHONPATH so imports like `from mastering.*` work
ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

# Use an in-memory SQLite DB during tests unless overridden; settings and the
# DB engine are read at import time
import os
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DB_ECHO", "0")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="mastering-logs-"))
