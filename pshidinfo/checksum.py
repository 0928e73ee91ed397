import binascii
import struct
from typing import Union

FEATURE_CRC_SEED: int = 0x53
CHECKSUM_OFFSET: int = 0x2C
CHECKSUM_SIZE: int = 4


def crc32_seeded(seed: int, data: Union[bytes, bytearray]) -> int:
    """CRC-32 (reflected 0xEDB88320) over a one-byte seed followed by ``data``.

    The firmware folds the report-type byte into the CRC before the payload;
    feature reports use 0x53.
    """
    crc = binascii.crc32(bytes((seed & 0xFF,)))
    return binascii.crc32(data, crc) & 0xFFFFFFFF


def report_checksum(report: Union[bytes, bytearray], seed: int = FEATURE_CRC_SEED,
                    offset: int = CHECKSUM_OFFSET) -> int:
    if len(report) < offset + CHECKSUM_SIZE:
        raise ValueError(f"Report of {len(report)} bytes has no checksum field at 0x{offset:02X}")
    return crc32_seeded(seed, bytes(report[:offset]))


def stamp_checksum(report: bytearray, seed: int = FEATURE_CRC_SEED,
                   offset: int = CHECKSUM_OFFSET) -> int:
    """Compute the checksum over the bytes before ``offset`` and write it there, little-endian."""
    crc = report_checksum(report, seed, offset)
    struct.pack_into("<I", report, offset, crc)
    return crc


def verify_checksum(report: Union[bytes, bytearray], seed: int = FEATURE_CRC_SEED,
                    offset: int = CHECKSUM_OFFSET) -> bool:
    stored = struct.unpack_from("<I", report, offset)[0]
    return stored == report_checksum(report, seed, offset)
