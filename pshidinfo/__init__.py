"""Polling-rate and latency inspector for Sony HID game controllers."""

from pshidinfo.errors import (ProtocolError, ReportTimeoutError, SessionCancelled, SessionError,
                              StreamClosedError, TransportError)
from pshidinfo.rates import ALL_RATES, PollRate, encode_rate
from pshidinfo.rolling import RollingAverage, RollingMedian
from pshidinfo.session import DeviceSession, TelemetrySample

__version__ = "1.0.0"

__all__ = [
    "DeviceSession",
    "TelemetrySample",
    "PollRate",
    "ALL_RATES",
    "encode_rate",
    "RollingAverage",
    "RollingMedian",
    "SessionError",
    "TransportError",
    "StreamClosedError",
    "ReportTimeoutError",
    "ProtocolError",
    "SessionCancelled",
]
