from __future__ import annotations

import math
import statistics
import unittest

from pshidinfo.rolling import RollingAverage, RollingMedian


class RollingAverageTests(unittest.TestCase):
    def test_empty_average_is_zero(self) -> None:
        self.assertEqual(RollingAverage(5).average, 0.0)

    def test_average_of_partial_window(self) -> None:
        window = RollingAverage(10)
        for value in (1.0, 2.0, 4.5):
            window.add(value)
        self.assertAlmostEqual(window.average, 7.5 / 3)

    def test_eviction_keeps_last_capacity_values(self) -> None:
        window = RollingAverage(3)
        for value in (1.0, 5.0, 2.0, 8.0):
            window.add(value)
        self.assertEqual(window.values, [5.0, 2.0, 8.0])
        self.assertAlmostEqual(window.average, (5 + 2 + 8) / 3)

    def test_running_sum_tracks_long_streams(self) -> None:
        window = RollingAverage(20)
        values = [math.sin(i) * 1000.0 + 250_000.0 for i in range(5000)]
        for value in values:
            window.add(value)
        self.assertEqual(len(window), 20)
        self.assertAlmostEqual(window.average, statistics.fmean(values[-20:]), places=4)

    def test_reset_clears_history(self) -> None:
        window = RollingAverage(3)
        for value in (3.0, 4.0, 5.0, 6.0):
            window.add(value)
        window.reset()
        self.assertEqual(window.average, 0.0)
        self.assertEqual(len(window), 0)
        window.add(10.0)
        self.assertEqual(window.average, 10.0)

    def test_rejects_non_positive_capacity(self) -> None:
        with self.assertRaises(ValueError):
            RollingAverage(0)


class RollingMedianTests(unittest.TestCase):
    def build(self, values, capacity: int = 10) -> RollingMedian:
        window = RollingMedian(capacity)
        for value in values:
            window.add(value)
        return window

    def test_empty_window(self) -> None:
        window = RollingMedian(4)
        self.assertEqual(window.median, 0.0)
        self.assertEqual(window.deviation, 0.0)

    def test_odd_and_even_median(self) -> None:
        self.assertEqual(self.build([3.0, 1.0, 2.0]).median, 2.0)
        self.assertEqual(self.build([4.0, 1.0, 3.0, 2.0]).median, 2.5)

    def test_median_does_not_reorder_window(self) -> None:
        window = self.build([3.0, 1.0, 2.0])
        _ = window.median
        self.assertEqual(window.values, [3.0, 1.0, 2.0])

    def test_deviation_is_sample_standard_deviation(self) -> None:
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
        self.assertAlmostEqual(self.build(values).deviation, statistics.stdev(values))

    def test_deviation_degenerate_cases(self) -> None:
        self.assertEqual(self.build([2.0, 2.0, 2.0]).deviation, 0.0)
        self.assertEqual(self.build([42.0]).deviation, 0.0)

    def test_eviction_is_fifo(self) -> None:
        window = self.build([1.0, 5.0, 2.0, 8.0], capacity=3)
        self.assertEqual(window.values, [5.0, 2.0, 8.0])
        self.assertEqual(window.median, 5.0)

    def test_reset(self) -> None:
        window = self.build([1.0, 2.0, 3.0])
        window.reset()
        self.assertEqual(window.median, 0.0)
        self.assertEqual(window.deviation, 0.0)


if __name__ == "__main__":
    unittest.main()
