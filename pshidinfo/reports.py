import logging
import struct
from typing import Dict, Iterator, Optional, Union

from pshidinfo.checksum import CHECKSUM_OFFSET, FEATURE_CRC_SEED, stamp_checksum
from pshidinfo.errors import ProtocolError
from pshidinfo.rates import encode_rate

logger = logging.getLogger(__name__)

SONY_VENDOR_ID: int = 0x054C

PRODUCT_DUALSHOCK4_V1: int = 0x05C4
PRODUCT_DUALSHOCK4_V2: int = 0x09CC
PRODUCT_DUALSHOCK4_DONGLE: int = 0x0BA0
PRODUCT_DUALSENSE: int = 0x0CE6
PRODUCT_DUALSENSE_EDGE: int = 0x0DF2

TIMESTAMP_OFFSETS: Dict[int, int] = {
    PRODUCT_DUALSENSE: 50,
    PRODUCT_DUALSENSE_EDGE: 50,
    PRODUCT_DUALSHOCK4_V1: 49,
    PRODUCT_DUALSHOCK4_V2: 49,
    PRODUCT_DUALSHOCK4_DONGLE: 49,
}

SUB_RECORD_SIZE: int = 78
TICK_RATE_HZ: float = 3_000_000.0

LATENCY_REPORT_SIZE: int = 0x40
LATENCY_REPORT_ID: int = 0x81
LATENCY_SUBCOMMAND: bytes = bytes((0x09, 0x1A))

RATE_REPORT_SIZE: int = 0x30
RATE_REPORT_ID: int = 0x08
RATE_SUBCOMMAND: int = 0x0E
RATE_FIELD_OFFSET: int = 2

ByteBuffer = Union[bytes, bytearray, memoryview]


def timestamp_offset_for(product_id: int) -> int:
    try:
        return TIMESTAMP_OFFSETS[product_id]
    except KeyError:
        raise ProtocolError(
            f"No known timestamp offset for product 0x{product_id:04X}; "
            f"supported products: {', '.join(f'0x{p:04X}' for p in TIMESTAMP_OFFSETS)}") from None


def u32_le(data: ByteBuffer, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def iter_timestamps(report: ByteBuffer, length: int, offset: int,
                    record_size: int = SUB_RECORD_SIZE) -> Iterator[int]:
    """Yield the device timestamp of each complete sub-record in the first ``length`` bytes."""
    for i in range(length // record_size):
        position = offset + i * record_size
        if position + 4 > length:
            logger.debug(f"Sub-record {i} too short for timestamp at {position} (len {length})")
            return
        yield u32_le(report, position)


def tick_delta(current: int, last: int) -> int:
    # Counter is an unsigned 32-bit value; masking keeps deltas right across wraparound.
    return (current - last) & 0xFFFFFFFF


def ticks_to_frequency(delta: int, tick_rate: float = TICK_RATE_HZ) -> float:
    return tick_rate / float(delta)


def fill_latency_probe(report: bytearray) -> bytearray:
    report[:] = bytes(len(report))
    report[0] = LATENCY_REPORT_ID
    report[1:3] = LATENCY_SUBCOMMAND
    return report


def build_latency_probe() -> bytearray:
    return fill_latency_probe(bytearray(LATENCY_REPORT_SIZE))


def build_rate_report(code: int, report: Optional[bytearray] = None) -> bytearray:
    """Build (or refill) the 48-byte rate-set feature report for an interval code, checksum included."""
    if report is None:
        report = bytearray(RATE_REPORT_SIZE)
    else:
        report[:] = bytes(len(report))
    report[0] = RATE_REPORT_ID
    report[1] = RATE_SUBCOMMAND
    struct.pack_into("<I", report, RATE_FIELD_OFFSET, encode_rate(code))
    stamp_checksum(report, FEATURE_CRC_SEED, CHECKSUM_OFFSET)
    return report
