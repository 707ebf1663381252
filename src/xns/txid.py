from __future__ import annotations

import importlib
import logging
import threading
import time
from typing import Callable, Protocol


logger = logging.getLogger(__name__)

REFRESH_INTERVAL_SECONDS = 12 * 60 * 60


class TxIdError(RuntimeError):
    pass


class TransactionSigner(Protocol):
    """
    x-client-transaction-id 的派生器。

    密钥来自 x.com 首页与 ondemand.s 脚本，派生算法不在本仓库内实现，
    通过 txid_provider（"package.module:factory"）注入。
    """

    def generate_transaction_id(self, method: str, path: str) -> str: ...


SignerFactory = Callable[[], TransactionSigner]


def load_signer_factory(spec: str) -> SignerFactory:
    """解析 "package.module:attr" 形式的导入路径。"""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise TxIdError(f"invalid txid provider {spec!r}, expected 'package.module:factory'")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise TxIdError(f"cannot load txid provider {spec!r}: {e}") from e
    if not callable(factory):
        raise TxIdError(f"txid provider {spec!r} is not callable")
    return factory


class TransactionIdCache:
    """
    进程级的签名缓存：首次使用或超过 refresh_interval 后重新构建 signer。

    invalidate() 只清空缓存，下次 generate() 时重建；
    invalidate_and_refresh() 立即重建（上游返回 403/404 时由调用方触发）。
    """

    def __init__(
        self,
        factory: SignerFactory,
        *,
        refresh_interval_seconds: float = REFRESH_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._refresh_interval_seconds = refresh_interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._signer: TransactionSigner | None = None
        self._fetched_at = 0.0

    def generate(self, method: str, path: str) -> str:
        with self._lock:
            if self._signer is None or self._clock() - self._fetched_at >= self._refresh_interval_seconds:
                self._refresh_locked()
            assert self._signer is not None
            return self._signer.generate_transaction_id(method, path)

    def invalidate(self) -> None:
        with self._lock:
            self._signer = None

    def invalidate_and_refresh(self) -> None:
        with self._lock:
            self._signer = None
            self._refresh_locked()

    def _refresh_locked(self) -> None:
        try:
            signer = self._factory()
        except TxIdError:
            raise
        except Exception as e:  # noqa: BLE001
            raise TxIdError(f"failed to build transaction signer: {type(e).__name__}: {e}") from e
        self._signer = signer
        self._fetched_at = self._clock()
        logger.info("txid: refreshed transaction id keys")
