import os
import tempfile
from pathlib import Path

# hostcheck.config reads the environment at import time, so point the default
# database somewhere disposable before any test module imports it.
os.environ.setdefault(
    "HOSTCHECK_DB_PATH",
    str(Path(tempfile.mkdtemp(prefix="hostcheck-tests-")) / "hostcheck.sqlite3"),
)
