from __future__ import annotations

import threading
import unittest

from pg_crud_driver.core.errors import TooManyConnectionsError
from pg_crud_driver.ports.postgres.pool import ConnectionPool
from tests.fakes import FakeConnection


class ConnectionPoolTests(unittest.TestCase):
    def setUp(self) -> None:
        self.created: list[FakeConnection] = []

    def _factory(self) -> FakeConnection:
        conn = FakeConnection()
        self.created.append(conn)
        return conn

    def test_checkout_creates_and_checkin_reuses(self) -> None:
        pool = ConnectionPool(self._factory, max_connections=2)

        conn = pool.checkout()
        self.assertEqual(pool.in_use_count, 1)
        pool.checkin(conn)
        self.assertEqual(pool.in_use_count, 0)
        self.assertEqual(pool.available_count, 1)

        again = pool.checkout()
        self.assertIs(again, conn)
        self.assertEqual(len(self.created), 1)

    def test_second_overlapping_checkout_with_one_slot_fails(self) -> None:
        pool = ConnectionPool(self._factory, max_connections=1)
        pool.checkout()

        with self.assertRaises(TooManyConnectionsError) as ctx:
            pool.checkout()

        self.assertEqual(ctx.exception.in_use, 1)
        self.assertEqual(ctx.exception.max_connections, 1)
        self.assertIn("1 connections in use", str(ctx.exception))
        self.assertEqual(len(self.created), 1)

    def test_overlapping_checkouts_get_distinct_connections(self) -> None:
        pool = ConnectionPool(self._factory, max_connections=3)
        conns = [pool.checkout() for _ in range(3)]

        self.assertEqual(len({id(conn) for conn in conns}), 3)
        self.assertEqual(pool.in_use_count + pool.available_count, 3)

    def test_checkin_of_unknown_connection_raises(self) -> None:
        pool = ConnectionPool(self._factory, max_connections=1)
        with self.assertRaises(ValueError):
            pool.checkin(FakeConnection())

        conn = pool.checkout()
        pool.checkin(conn)
        with self.assertRaises(ValueError):
            pool.checkin(conn)

    def test_clear_closes_every_connection(self) -> None:
        pool = ConnectionPool(self._factory, max_connections=2)
        idle = pool.checkout()
        busy = pool.checkout()
        pool.checkin(idle)

        pool.clear(lambda conn: conn.close())

        self.assertEqual(idle.close_calls, 1)
        self.assertEqual(busy.close_calls, 1)
        self.assertEqual(pool.in_use_count, 0)
        self.assertEqual(pool.available_count, 0)

    def test_checkin_after_clear_drops_the_connection(self) -> None:
        pool = ConnectionPool(self._factory, max_connections=1)
        busy = pool.checkout()

        pool.clear()
        pool.checkin(busy)

        self.assertEqual(pool.in_use_count, 0)
        self.assertEqual(pool.available_count, 0)
        self.assertIsNot(pool.checkout(), busy)
        with self.assertRaises(ValueError):
            pool.checkin(busy)

    def test_factory_error_frees_the_reserved_slot(self) -> None:
        calls = 0

        def _flaky() -> FakeConnection:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OSError("connection refused")
            return FakeConnection()

        pool = ConnectionPool(_flaky, max_connections=1)
        with self.assertRaises(OSError):
            pool.checkout()
        self.assertEqual(pool.in_use_count, 0)
        self.assertIsInstance(pool.checkout(), FakeConnection)

    def test_connection_context_manager_checks_in(self) -> None:
        pool = ConnectionPool(self._factory, max_connections=1)
        with pool.connection() as conn:
            self.assertEqual(pool.in_use_count, 1)
        self.assertEqual(pool.available_count, 1)
        self.assertIs(pool.checkout(), conn)

    def test_invalid_max_connections_raises(self) -> None:
        with self.assertRaises(ValueError):
            ConnectionPool(self._factory, max_connections=0)

    def test_concurrent_checkouts_never_share_or_exceed_cap(self) -> None:
        pool = ConnectionPool(self._factory, max_connections=4)
        lock = threading.Lock()
        holders: dict[int, int] = {}
        errors: list[str] = []

        def _worker() -> None:
            for _ in range(200):
                try:
                    conn = pool.checkout()
                except TooManyConnectionsError:
                    continue
                with lock:
                    if id(conn) in holders:
                        errors.append("shared connection")
                    holders[id(conn)] = threading.get_ident()
                    if pool.in_use_count + pool.available_count > 4:
                        errors.append("cap exceeded")
                with lock:
                    del holders[id(conn)]
                pool.checkin(conn)

        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertLessEqual(len(self.created), 4)
        self.assertEqual(pool.in_use_count, 0)


if __name__ == "__main__":
    unittest.main()
