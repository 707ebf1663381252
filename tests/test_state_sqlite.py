import os
import sys
import tempfile
import unittest


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))


from xns.state.sqlite_store import SqliteAccountStore  # noqa: E402


class TestSqliteAccountStore(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.store = SqliteAccountStore(os.path.join(self._td.name, "xns.sqlite3"))
        self.store.ensure_schema()

    def tearDown(self) -> None:
        self.store.close()
        self._td.cleanup()

    def test_register_is_upsert_and_keeps_marker(self) -> None:
        self.store.register(user_id="u1", auth_token="a", csrf_token="c", endpoint="https://up/1")
        self.assertTrue(self.store.update_progress_marker("u1", "100"))

        self.store.register(user_id="u1", auth_token="a2", csrf_token="c2", endpoint="https://up/2")

        [account] = self.store.list_accounts()
        self.assertEqual(account.auth_token, "a2")
        self.assertEqual(account.endpoint, "https://up/2")
        self.assertEqual(account.last_sort_index, "100")
        self.assertEqual(self.store.count(), 1)

    def test_new_account_has_no_marker(self) -> None:
        self.store.register(user_id="u1", auth_token="a", csrf_token="c", endpoint="https://up/1")
        account = self.store.get_account("u1")
        assert account is not None
        self.assertIsNone(account.last_sort_index)
        self.assertIsNotNone(account.created_at)

    def test_unregister(self) -> None:
        self.store.register(user_id="u1", auth_token="a", csrf_token="c", endpoint="https://up/1")
        self.assertTrue(self.store.unregister("u1"))
        self.assertFalse(self.store.unregister("u1"))
        self.assertEqual(self.store.list_accounts(), [])

    def test_update_unknown_account_reports_false(self) -> None:
        self.assertFalse(self.store.update_progress_marker("ghost", "1"))

    def test_persists_across_instances(self) -> None:
        self.store.register(user_id="u1", auth_token="a", csrf_token="c", endpoint="https://up/1")
        self.store.update_progress_marker("u1", "7")
        self.store.close()

        reopened = SqliteAccountStore(os.path.join(self._td.name, "xns.sqlite3"))
        try:
            reopened.ensure_schema()
            self.assertEqual(reopened.get_account("u1").last_sort_index, "7")
        finally:
            reopened.close()
