from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

from .config import AppConfig
from .http_utils import HttpClient
from .models import Account, Notification
from .notify.base import DeliveryOutcome, Notifier
from .notify.unified_push import UnifiedPushNotifier, deliver
from .sources.base import NotificationSource, XAuth
from .sources.x import XNotificationsSource
from .state.sqlite_store import SqliteAccountStore
from .state.store import AccountStore
from .txid import TransactionIdCache


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def select_new(notifications: list[Notification], marker: str | None) -> list[Notification]:
    """
    保留 sort_index 严格大于进度标记的通知（普通字符串比较），保持原有顺序。

    marker 为 None（从未轮询过）时全部保留：首次轮询会把当前积压投递一次。
    """
    if marker is None:
        return list(notifications)
    return [n for n in notifications if n.sort_index > marker]


@dataclass(slots=True)
class AccountPollReport:
    user_id: str
    marker_before: str | None
    marker_after: str | None
    unread_count: int = 0
    events_fetched: int = 0
    events_new: int = 0
    deliveries: list[DeliveryOutcome] = field(default_factory=list)
    error: str | None = None
    duration_ms: int = 0

    @property
    def delivered(self) -> int:
        return sum(1 for d in self.deliveries if d.ok)

    @property
    def delivery_failures(self) -> int:
        return sum(1 for d in self.deliveries if not d.ok)


@dataclass(slots=True)
class RunOnceReport:
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    accounts: tuple[AccountPollReport, ...]
    events_fetched: int
    events_new: int
    delivered: int
    delivery_failures: int
    account_errors: int
    store_error: str | None = None


@dataclass(slots=True)
class Runner:
    """
    核心执行器：一次轮询周期内，对每个账号执行
    Probe -> Fetch/Extract -> Filter -> Deliver -> Advance。

    并发：每个账号一个工作线程，启动前先从容量为 max_concurrent 的信号量取得许可，
    同一时刻最多 max_concurrent 个账号在处理；run_once 等待所有线程结束后才返回。
    """

    store: AccountStore
    source: NotificationSource
    notifier: Notifier
    max_concurrent: int = 50

    def run_once(self) -> RunOnceReport:
        started_at = _utc_now()
        start_t = time.monotonic()

        try:
            accounts = self.store.list_accounts()
        except Exception as e:  # noqa: BLE001
            logger.exception("failed to list accounts; skipping cycle")
            return self._report(started_at, start_t, [], store_error=f"{type(e).__name__}: {e}")

        if not accounts:
            return self._report(started_at, start_t, [])

        logger.info("polling %d accounts (max_concurrent=%d)", len(accounts), self.max_concurrent)

        reports: list[AccountPollReport] = []
        reports_lock = threading.Lock()
        semaphore = threading.BoundedSemaphore(max(1, self.max_concurrent))

        def _worker(account: Account) -> None:
            try:
                r = self.poll_account(account)
            except Exception as e:  # noqa: BLE001
                logger.exception("poll task crashed: user_id=%s", account.user_id)
                r = AccountPollReport(
                    user_id=account.user_id,
                    marker_before=account.last_sort_index,
                    marker_after=account.last_sort_index,
                    error=f"crash: {type(e).__name__}: {e}",
                )
            finally:
                semaphore.release()
            with reports_lock:
                reports.append(r)

        threads: list[threading.Thread] = []
        for account in accounts:
            semaphore.acquire()
            t = threading.Thread(target=_worker, args=(account,), name=f"xns-poll-{account.user_id}", daemon=True)
            try:
                t.start()
            except RuntimeError:
                semaphore.release()
                logger.exception("failed to start poll task: user_id=%s", account.user_id)
                continue
            threads.append(t)

        for t in threads:
            t.join()

        return self._report(started_at, start_t, reports)

    def poll_account(self, account: Account) -> AccountPollReport:
        """
        单账号轮询任务。

        - 未读数为 0：直接结束，不拉时间线
        - probe/fetch 失败：记录日志后结束，下个周期自然重试
        - 投递：按抽取顺序（sort_index 降序）逐条尝试，单条失败不影响后续
        - 进度：无论投递结果如何，都把已保留集合中最大的 sort_index 写回
        """
        start_t = time.monotonic()
        marker = account.last_sort_index
        report = AccountPollReport(user_id=account.user_id, marker_before=marker, marker_after=marker)
        auth = XAuth.for_account(account)

        try:
            badge = self.source.badge_count(auth)
        except Exception as e:  # noqa: BLE001
            logger.warning("probe failed: user_id=%s error=%s: %s", account.user_id, type(e).__name__, e)
            report.error = f"probe: {type(e).__name__}: {e}"
            return self._finish(report, start_t)

        report.unread_count = badge.ntab_unread_count
        if badge.ntab_unread_count == 0:
            return self._finish(report, start_t)

        try:
            notifications = self.source.notifications(auth)
        except Exception as e:  # noqa: BLE001
            logger.warning("fetch failed: user_id=%s error=%s: %s", account.user_id, type(e).__name__, e)
            report.error = f"fetch: {type(e).__name__}: {e}"
            return self._finish(report, start_t)

        report.events_fetched = len(notifications)
        new = select_new(notifications, marker)
        report.events_new = len(new)
        if not new:
            return self._finish(report, start_t)

        logger.info("user_id=%s has %d new notifications", account.user_id, len(new))

        for notification in new:
            report.deliveries.append(deliver(self.notifier, account.endpoint, notification, user_id=account.user_id))

        newest = max(n.sort_index for n in new)
        try:
            updated = self.store.update_progress_marker(account.user_id, newest)
        except Exception as e:  # noqa: BLE001
            logger.exception("failed to update progress marker: user_id=%s marker=%s", account.user_id, newest)
            report.error = f"store: {type(e).__name__}: {e}"
            return self._finish(report, start_t)

        if updated:
            report.marker_after = newest
        else:
            logger.warning("progress marker not updated (account removed?): user_id=%s", account.user_id)
        return self._finish(report, start_t)

    @staticmethod
    def _finish(report: AccountPollReport, start_t: float) -> AccountPollReport:
        report.duration_ms = int((time.monotonic() - start_t) * 1000)
        return report

    @staticmethod
    def _report(
        started_at: datetime,
        start_t: float,
        reports: list[AccountPollReport],
        *,
        store_error: str | None = None,
    ) -> RunOnceReport:
        return RunOnceReport(
            started_at=started_at,
            finished_at=_utc_now(),
            duration_ms=int((time.monotonic() - start_t) * 1000),
            accounts=tuple(reports),
            events_fetched=sum(r.events_fetched for r in reports),
            events_new=sum(r.events_new for r in reports),
            delivered=sum(r.delivered for r in reports),
            delivery_failures=sum(r.delivery_failures for r in reports),
            account_errors=sum(1 for r in reports if r.error),
            store_error=store_error,
        )


def build_runner(config: AppConfig, *, txid: TransactionIdCache | None = None) -> Runner:
    """
    根据配置装配 Runner：共享一个 HttpClient，所有请求使用同一个显式超时。
    """
    http = HttpClient(timeout_seconds=config.request_timeout_seconds)
    store = SqliteAccountStore(config.db_path)
    store.ensure_schema()
    return Runner(
        store=store,
        source=XNotificationsSource(http=http, txid=txid),
        notifier=UnifiedPushNotifier(http=http),
        max_concurrent=config.max_concurrent,
    )
