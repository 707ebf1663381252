from __future__ import annotations

from typing import Protocol

from ..models import Account


class AccountStore(Protocol):
    """
    账号存储接口：
    - list_accounts / update_progress_marker：轮询核心只用这两个操作，各自原子即可
    - register / unregister / count：供管理接口使用
    """

    def list_accounts(self) -> list[Account]: ...

    def update_progress_marker(self, user_id: str, marker: str) -> bool: ...

    def register(self, *, user_id: str, auth_token: str, csrf_token: str, endpoint: str) -> None: ...

    def unregister(self, user_id: str) -> bool: ...

    def count(self) -> int: ...
