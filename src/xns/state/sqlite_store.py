from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, field

from ..models import Account


@dataclass(slots=True)
class SqliteAccountStore:
    """
    默认账号存储：SQLite

    - 单连接 + 单把锁：所有读写互斥，不会出现撕裂读
    - accounts.last_sort_index 是每个账号唯一的去重状态
    """

    sqlite_path: str
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _conn: sqlite3.Connection | None = field(default=None, init=False, repr=False)

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(self.sqlite_path, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.row_factory = sqlite3.Row
            self._conn = conn
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def ensure_schema(self) -> None:
        with self._lock:
            conn = self._connection()
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS accounts (
                        user_id TEXT PRIMARY KEY,
                        auth_token TEXT NOT NULL,
                        csrf_token TEXT NOT NULL,
                        endpoint TEXT NOT NULL,
                        last_sort_index TEXT,
                        created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
                        updated_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
                    )
                    """
                )

    def register(self, *, user_id: str, auth_token: str, csrf_token: str, endpoint: str) -> None:
        """重复注册视为更新凭据与推送端点，保留已有的进度标记。"""
        with self._lock:
            conn = self._connection()
            with conn:
                conn.execute(
                    """
                    INSERT INTO accounts(user_id, auth_token, csrf_token, endpoint, updated_at)
                    VALUES(?, ?, ?, ?, strftime('%s', 'now'))
                    ON CONFLICT(user_id) DO UPDATE SET
                        auth_token=excluded.auth_token,
                        csrf_token=excluded.csrf_token,
                        endpoint=excluded.endpoint,
                        updated_at=excluded.updated_at
                    """,
                    (user_id, auth_token, csrf_token, endpoint),
                )

    def unregister(self, user_id: str) -> bool:
        with self._lock:
            conn = self._connection()
            with conn:
                cur = conn.execute("DELETE FROM accounts WHERE user_id = ?", (user_id,))
            return cur.rowcount > 0

    def get_account(self, user_id: str) -> Account | None:
        with self._lock:
            row = self._connection().execute(
                """
                SELECT user_id, auth_token, csrf_token, endpoint, last_sort_index, created_at, updated_at
                FROM accounts WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        return _row_to_account(row) if row else None

    def list_accounts(self) -> list[Account]:
        with self._lock:
            rows = self._connection().execute(
                """
                SELECT user_id, auth_token, csrf_token, endpoint, last_sort_index, created_at, updated_at
                FROM accounts ORDER BY user_id
                """
            ).fetchall()
        return [_row_to_account(r) for r in rows]

    def update_progress_marker(self, user_id: str, marker: str) -> bool:
        with self._lock:
            conn = self._connection()
            with conn:
                cur = conn.execute(
                    """
                    UPDATE accounts
                    SET last_sort_index = ?, updated_at = strftime('%s', 'now')
                    WHERE user_id = ?
                    """,
                    (marker, user_id),
                )
            return cur.rowcount > 0

    def count(self) -> int:
        with self._lock:
            row = self._connection().execute("SELECT COUNT(*) FROM accounts").fetchone()
        return int(row[0])


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(
        user_id=row["user_id"],
        auth_token=row["auth_token"],
        csrf_token=row["csrf_token"],
        endpoint=row["endpoint"],
        last_sort_index=row["last_sort_index"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
