import os
import sys


PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

import pytest  # noqa: E402

from xns.state.sqlite_store import SqliteAccountStore  # noqa: E402


@pytest.fixture()
def store(tmp_path) -> SqliteAccountStore:  # noqa: ANN001
    s = SqliteAccountStore(str(tmp_path / "xns.sqlite3"))
    s.ensure_schema()
    try:
        yield s
    finally:
        s.close()
