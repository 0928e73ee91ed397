from __future__ import annotations

import struct
import unittest

from pshidinfo.errors import ProtocolError
from pshidinfo.reports import (LATENCY_REPORT_SIZE, PRODUCT_DUALSENSE, PRODUCT_DUALSENSE_EDGE,
                               PRODUCT_DUALSHOCK4_V2, RATE_REPORT_SIZE, SUB_RECORD_SIZE,
                               build_latency_probe, build_rate_report, iter_timestamps, tick_delta,
                               ticks_to_frequency, timestamp_offset_for)


def make_report(timestamps, offset: int = 50) -> bytearray:
    report = bytearray(SUB_RECORD_SIZE * len(timestamps))
    for i, timestamp in enumerate(timestamps):
        struct.pack_into("<I", report, offset + i * SUB_RECORD_SIZE, timestamp)
    return report


class ReportTests(unittest.TestCase):
    def test_timestamp_offsets_by_product(self) -> None:
        self.assertEqual(timestamp_offset_for(PRODUCT_DUALSENSE), 50)
        self.assertEqual(timestamp_offset_for(PRODUCT_DUALSENSE_EDGE), 50)
        self.assertEqual(timestamp_offset_for(PRODUCT_DUALSHOCK4_V2), 49)

    def test_unknown_product_fails_fast(self) -> None:
        with self.assertRaises(ProtocolError):
            timestamp_offset_for(0x1234)

    def test_iter_timestamps_over_batched_records(self) -> None:
        report = make_report([100, 110, 0xFFFFFFFF])
        self.assertEqual(list(iter_timestamps(report, len(report), 50)), [100, 110, 0xFFFFFFFF])

    def test_iter_timestamps_ignores_partial_records(self) -> None:
        report = make_report([7, 8])
        self.assertEqual(list(iter_timestamps(report, SUB_RECORD_SIZE + 10, 50)), [7])
        self.assertEqual(list(iter_timestamps(report, 0, 50)), [])
        self.assertEqual(list(iter_timestamps(report, 64, 50)), [])

    def test_frequency_from_delta(self) -> None:
        self.assertEqual(ticks_to_frequency(tick_delta(110, 100)), 300000.0)

    def test_wraparound_delta(self) -> None:
        self.assertEqual(tick_delta(5, 0xFFFFFFF0), 21)
        self.assertAlmostEqual(ticks_to_frequency(tick_delta(5, 0xFFFFFFF0)), 3_000_000 / 21)

    def test_latency_probe_layout(self) -> None:
        probe = build_latency_probe()
        self.assertEqual(len(probe), LATENCY_REPORT_SIZE)
        self.assertEqual(bytes(probe[:3]), b"\x81\x09\x1a")
        self.assertEqual(probe.count(0), LATENCY_REPORT_SIZE - 3)

    def test_rate_report_layout(self) -> None:
        report = build_rate_report(16)
        self.assertEqual(len(report), RATE_REPORT_SIZE)
        self.assertEqual(report[0], 0x08)
        self.assertEqual(report[1], 0x0E)
        self.assertEqual(struct.unpack_from("<I", report, 2)[0], 0x00020010)
        self.assertEqual(bytes(report[6:0x2C]), bytes(0x2C - 6))

    def test_rate_report_refill_clears_previous_contents(self) -> None:
        report = build_rate_report(80)
        build_rate_report(0, report)
        self.assertEqual(report, build_rate_report(0))


if __name__ == "__main__":
    unittest.main()
