from __future__ import annotations

import unittest

from pg_crud_driver.core.errors import TooManyConnectionsError, TransactionClosedError
from pg_crud_driver.ports.postgres.pool import ConnectionPool
from pg_crud_driver.ports.postgres.transaction import TransactionManager
from tests.fakes import FakeConnection


class TransactionManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = FakeConnection()
        self.pool = ConnectionPool(lambda: self.conn, max_connections=1)
        self.manager = TransactionManager(self.pool, "crud_driver_7")

    def test_open_begins_and_sets_checkpoint(self) -> None:
        tx = self.manager.open()

        self.assertIs(tx.connection, self.conn)
        self.assertFalse(tx.closed)
        self.assertEqual(self.conn.executed, ["BEGIN", 'SAVEPOINT "crud_driver_7"'])
        self.assertEqual(self.pool.in_use_count, 1)

    def test_flush_rearms_savepoint(self) -> None:
        tx = self.manager.open()
        self.manager.flush(tx)

        self.assertEqual(
            self.conn.executed[-2:],
            ['RELEASE SAVEPOINT "crud_driver_7"', 'SAVEPOINT "crud_driver_7"'],
        )

    def test_revert_rolls_back_to_savepoint_and_keeps_connection(self) -> None:
        tx = self.manager.open()
        self.manager.revert(tx)

        self.assertEqual(self.conn.executed[-1], 'ROLLBACK TO SAVEPOINT "crud_driver_7"')
        self.assertFalse(tx.closed)
        self.assertEqual(self.pool.in_use_count, 1)

    def test_commit_returns_connection(self) -> None:
        tx = self.manager.open()
        self.manager.commit(tx)

        self.assertEqual(self.conn.executed[-1], "COMMIT")
        self.assertTrue(tx.closed)
        self.assertEqual(self.pool.in_use_count, 0)
        self.assertEqual(self.pool.available_count, 1)

    def test_rollback_returns_connection(self) -> None:
        tx = self.manager.open()
        self.manager.rollback(tx)

        self.assertEqual(self.conn.executed[-1], "ROLLBACK")
        self.assertTrue(tx.closed)
        self.assertEqual(self.pool.in_use_count, 0)

    def test_closed_transaction_cannot_be_reused(self) -> None:
        tx = self.manager.open()
        self.manager.commit(tx)

        for operation in (
            self.manager.flush,
            self.manager.revert,
            self.manager.commit,
            self.manager.rollback,
        ):
            with self.assertRaises(TransactionClosedError):
                operation(tx)

    def test_failed_commit_still_returns_connection(self) -> None:
        tx = self.manager.open()
        self.conn.fail("COMMIT", RuntimeError("server closed the connection"))

        with self.assertRaises(RuntimeError):
            self.manager.commit(tx)
        self.assertTrue(tx.closed)
        self.assertEqual(self.pool.in_use_count, 0)

    def test_failed_begin_returns_connection(self) -> None:
        self.conn.fail("BEGIN", RuntimeError("boom"))

        with self.assertRaises(RuntimeError):
            self.manager.open()
        self.assertEqual(self.pool.in_use_count, 0)

    def test_failed_savepoint_rolls_back_before_returning_connection(self) -> None:
        self.conn.fail("SAVEPOINT", RuntimeError("out of shared memory"))

        with self.assertRaises(RuntimeError):
            self.manager.open()
        self.assertEqual(
            self.conn.executed, ["BEGIN", 'SAVEPOINT "crud_driver_7"', "ROLLBACK"]
        )
        self.assertEqual(self.pool.in_use_count, 0)
        self.assertEqual(self.pool.available_count, 1)

    def test_failed_rollback_keeps_original_error(self) -> None:
        self.conn.fail("SAVEPOINT", KeyError("savepoint"))
        self.conn.fail("ROLLBACK", RuntimeError("connection lost"))

        with self.assertRaises(KeyError):
            self.manager.open()
        self.assertEqual(self.conn.executed[-1], "ROLLBACK")
        self.assertEqual(self.pool.in_use_count, 0)

    def test_second_concurrent_transaction_exceeds_pool(self) -> None:
        self.manager.open()
        with self.assertRaises(TooManyConnectionsError):
            self.manager.open()

    def test_sequential_transactions_reuse_connection(self) -> None:
        first = self.manager.open()
        self.manager.commit(first)
        second = self.manager.open()

        self.assertIs(second.connection, first.connection)
        self.assertIsNot(second, first)


if __name__ == "__main__":
    unittest.main()
