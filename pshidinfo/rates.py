from enum import IntEnum
from typing import Dict, List


class PollRate(IntEnum):
    # Values are the controller's interval codes, not Hz.
    POLL_20HZ = 80
    POLL_33HZ = 48
    POLL_40HZ = 40
    POLL_50HZ = 32
    POLL_66HZ = 24
    POLL_80HZ = 20
    POLL_100HZ = 16
    POLL_133HZ = 12
    POLL_160HZ = 10
    POLL_200HZ = 8
    POLL_266HZ = 6
    DEFAULT = 0

    @property
    def label(self) -> str:
        return RATE_LABELS[self]

    def encode(self) -> int:
        return encode_rate(int(self))

    @classmethod
    def from_label(cls, label: str) -> "PollRate":
        wanted = label.strip().lower().replace(" ", "")
        for rate, text in RATE_LABELS.items():
            if text.lower().replace(" ", "") == wanted:
                return rate
        raise ValueError(f"Unknown poll rate '{label}'. Choose one of: {', '.join(RATE_LABELS.values())}")


RATE_LABELS: Dict[PollRate, str] = {
    PollRate.POLL_20HZ: "20 Hz",
    PollRate.POLL_33HZ: "33 Hz",
    PollRate.POLL_40HZ: "40 Hz",
    PollRate.POLL_50HZ: "50 Hz",
    PollRate.POLL_66HZ: "66 Hz",
    PollRate.POLL_80HZ: "80 Hz",
    PollRate.POLL_100HZ: "100 Hz",
    PollRate.POLL_133HZ: "133 Hz",
    PollRate.POLL_160HZ: "160 Hz",
    PollRate.POLL_200HZ: "200 Hz",
    PollRate.POLL_266HZ: "266 Hz",
    PollRate.DEFAULT: "Default",
}

ALL_RATES: List[PollRate] = list(PollRate)


def encode_rate(code: int) -> int:
    """Pack an interval code into the 32-bit rate field: low half the code, high half code // 6."""
    if code < 0:
        raise ValueError(f"Rate code must be non-negative, got {code}")
    return (code + ((code // 6) << 16)) & 0xFFFFFFFF
