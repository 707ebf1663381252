from .sqlite_store import SqliteAccountStore
from .store import AccountStore

__all__ = [
    "AccountStore",
    "SqliteAccountStore",
]
