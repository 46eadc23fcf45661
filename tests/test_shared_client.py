from __future__ import annotations

import threading
import time
import unittest
from concurrent.futures import Future, ThreadPoolExecutor
from types import SimpleNamespace
from unittest.mock import patch

from billdesk.config import Settings
from billdesk.db import SharedClient, _initialize
from billdesk.errors import ConfigError

from fake_d1 import FakeD1


class SharedClientTests(unittest.TestCase):
    def test_concurrent_first_calls_share_one_initialisation(self) -> None:
        release = threading.Event()
        calls = []

        def factory():
            calls.append(threading.get_ident())
            release.wait(timeout=5)
            return SimpleNamespace(name='client')

        shared = SharedClient(factory)
        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(shared.get) for _ in range(8)]
            time.sleep(0.1)
            release.set()
            clients = [future.result(timeout=5) for future in futures]

        self.assertEqual(len(calls), 1)
        self.assertTrue(all(client is clients[0] for client in clients))

    def test_concurrent_first_calls_share_one_failed_initialisation(self) -> None:
        workers = 8
        all_waiting = threading.Event()
        waiting_lock = threading.Lock()
        waiting = []
        calls = []

        class WaitCountingFuture(Future):
            def result(self, timeout=None):
                with waiting_lock:
                    waiting.append(threading.get_ident())
                    if len(waiting) == workers - 1:
                        all_waiting.set()
                return super().result(timeout)

        def factory():
            calls.append(threading.get_ident())
            all_waiting.wait(timeout=5)
            raise ConfigError(['CLOUDFLARE_API_TOKEN'])

        shared = SharedClient(factory)
        with patch('billdesk.db.Future', WaitCountingFuture):
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(shared.get) for _ in range(workers)]
                errors = [future.exception(timeout=5) for future in futures]

        self.assertTrue(all_waiting.is_set())
        self.assertEqual(len(calls), 1)
        self.assertTrue(all(isinstance(error, ConfigError) for error in errors))
        self.assertTrue(all(error is errors[0] for error in errors))

    def test_later_calls_reuse_cached_client(self) -> None:
        calls = []
        shared = SharedClient(lambda: calls.append(1) or SimpleNamespace())

        self.assertIs(shared.get(), shared.get())
        self.assertEqual(len(calls), 1)

    def test_failed_initialisation_is_retried_on_next_call(self) -> None:
        attempts = []

        def factory():
            attempts.append(1)
            if len(attempts) == 1:
                raise ConfigError(['CLOUDFLARE_API_TOKEN'])
            return SimpleNamespace(name='client')

        shared = SharedClient(factory)

        with self.assertRaises(ConfigError):
            shared.get()
        client = shared.get()

        self.assertEqual(client.name, 'client')
        self.assertEqual(len(attempts), 2)

    def test_reset_forces_new_initialisation(self) -> None:
        shared = SharedClient(SimpleNamespace)
        first = shared.get()

        shared.reset()

        self.assertIsNot(shared.get(), first)

    def test_initialize_builds_client_and_bootstraps_schema(self) -> None:
        fake = FakeD1()
        settings = Settings(
            _env_file=None,
            cloudflare_account_id='acct',
            cloudflare_d1_database_id='db',
            cloudflare_api_token='tok',
        )

        with fake.patch(), patch('billdesk.db.settings', settings):
            client = _initialize()

        self.assertTrue(client.endpoint.endswith('/accounts/acct/d1/database/db/query'))
        tables = {row['name'] for row in fake.rows("SELECT name FROM sqlite_master WHERE type = 'table'")}
        self.assertIn('bills', tables)

    def test_initialize_without_credentials_raises_config_error(self) -> None:
        with patch(
            'billdesk.db.settings',
            Settings(_env_file=None, cloudflare_account_id=None, cloudflare_d1_database_id=None, cloudflare_api_token=None),
        ):
            with self.assertRaises(ConfigError) as ctx:
                _initialize()

        self.assertIn('CLOUDFLARE_ACCOUNT_ID', ctx.exception.missing)


if __name__ == '__main__':
    unittest.main()
