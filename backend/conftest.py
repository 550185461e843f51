# Ensure 'backend/' is on sys.path so 'import app.*' works
# even when pytest is started from the repository root.
import os
from pathlib import Path
import sys

_BACKEND_ROOT = Path(__file__).resolve().parent  # <repo>/backend
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))

# The engine is created at import time; point it at SQLite before anything imports app.database
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SITE_MODE", "local")
os.environ.setdefault("CI", "1")
