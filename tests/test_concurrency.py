import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from app.core.errors import ErrorKind
from app.services.adjustment_service import RetryPolicy, StockAdjuster
from tests.support import LedgerTestCase


class ConcurrentAdjustmentTest(LedgerTestCase):
    def setUp(self):
        super().setUp()
        self.adjuster = StockAdjuster(
            self.database,
            RetryPolicy(max_attempts=5, backoff_seconds=0.01, jitter=0.5),
        )

    def _run_together(self, calls):
        barrier = threading.Barrier(len(calls))

        def run(call):
            medicine_id, change_amount = call
            barrier.wait(timeout=10)
            return self.adjuster.adjust(medicine_id, change_amount, reason="concurrent")

        with ThreadPoolExecutor(max_workers=len(calls)) as pool:
            return list(pool.map(run, calls))

    def test_joint_overdraw_commits_exactly_once(self):
        medicine_id = self.add_medicine(quantity=10)

        results = self._run_together([(medicine_id, -6), (medicine_id, -6)])

        succeeded = [result for result in results if result.ok]
        failed = [result for result in results if not result.ok]
        self.assertEqual(len(succeeded), 1)
        self.assertEqual(len(failed), 1)
        self.assertIn(failed[0].error.kind, (ErrorKind.INSUFFICIENT_STOCK, ErrorKind.CONFLICT))
        self.assertEqual(succeeded[0].medicine.quantity_on_hand, 4)
        self.assertEqual(self.quantity_of(medicine_id), 4)
        self.assertEqual(self.history_of(medicine_id), [-6])

    def test_many_decrements_never_drive_stock_negative(self):
        medicine_id = self.add_medicine(quantity=10)

        results = self._run_together([(medicine_id, -1)] * 16)

        succeeded = [result for result in results if result.ok]
        self.assertEqual(len(succeeded), 10)
        for result in results:
            if not result.ok:
                self.assertIn(result.error.kind, (ErrorKind.INSUFFICIENT_STOCK, ErrorKind.CONFLICT))
        self.assertEqual(self.quantity_of(medicine_id), 0)
        history = self.history_of(medicine_id)
        self.assertEqual(len(history), 10)
        self.assertEqual(sum(history), -10)

    def test_mixed_deltas_reconcile(self):
        medicine_id = self.add_medicine(quantity=5)
        deltas = [3, -2, 4, -1, -3, 7, -5, 2]

        results = self._run_together([(medicine_id, delta) for delta in deltas])

        committed = sum(delta for delta, result in zip(deltas, results) if result.ok)
        self.assertEqual(self.quantity_of(medicine_id), 5 + committed)
        self.assertEqual(sum(self.history_of(medicine_id)), committed)
        self.assertGreaterEqual(self.quantity_of(medicine_id), 0)

    def test_different_medicines_both_commit(self):
        first = self.add_medicine(quantity=10)
        second = self.add_medicine(quantity=10)

        results = self._run_together([(first, -6), (second, -6)])

        self.assertTrue(all(result.ok for result in results))
        self.assertEqual(self.quantity_of(first), 4)
        self.assertEqual(self.quantity_of(second), 4)


if __name__ == "__main__":
    unittest.main()
