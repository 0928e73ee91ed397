import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, TypeVar

from pshidinfo.errors import (ProtocolError, ReportTimeoutError, SessionCancelled,
                              StreamClosedError, TransportError)
from pshidinfo.rates import PollRate
from pshidinfo.reports import (LATENCY_REPORT_SIZE, SUB_RECORD_SIZE, build_rate_report,
                               fill_latency_probe, iter_timestamps, tick_delta,
                               ticks_to_frequency, timestamp_offset_for)
from pshidinfo.rolling import RollingAverage, RollingMedian

logger = logging.getLogger(__name__)

FREQUENCY_WINDOW: int = 200
LATENCY_WINDOW: int = 20
PROBE_INTERVAL_S: float = 0.1
READ_TIMEOUT_MS: int = 200
JOIN_TIMEOUT_S: float = 2.0


@dataclass(frozen=True)
class TelemetrySample:
    median: float
    deviation: float
    average: float

    def format(self, unit: str) -> str:
        return (f"Median {self.median:.3f} {unit}\n"
                f"Deviation {self.deviation:.3f} {unit}\n"
                f"Average {self.average:.3f} {unit}")


class DeviceStream(Protocol):
    def read(self, buffer: bytearray, timeout_ms: Optional[int] = None) -> int: ...
    def get_feature_report(self, buffer: bytearray) -> int: ...
    def set_feature_report(self, buffer: bytearray) -> int: ...
    def flush(self) -> None: ...
    def close(self) -> None: ...


class DeviceHandle(Protocol):
    product_id: int

    def max_input_report_length(self) -> int: ...
    def open(self) -> DeviceStream: ...


T = TypeVar("T")
TelemetryListener = Callable[[TelemetrySample], None]
RateListener = Callable[[PollRate], None]


class DeviceSession:
    """Reads frequency and latency telemetry from one controller and changes its poll rate.

    ``start()`` opens the stream and runs the input-report reader and the
    feature-report latency prober on two threads. It blocks until the first of
    them ends and re-raises that loop's error, if any. Listeners are called on
    the thread that produced the value.
    """

    def __init__(self, device: DeviceHandle, *,
                 frequency_window: int = FREQUENCY_WINDOW,
                 latency_window: int = LATENCY_WINDOW,
                 probe_interval: float = PROBE_INTERVAL_S,
                 read_timeout_ms: int = READ_TIMEOUT_MS) -> None:
        self._device = device
        self._stream: Optional[DeviceStream] = None
        self._probe_interval = probe_interval
        self._read_timeout_ms = read_timeout_ms

        self._frequency_average = RollingAverage(frequency_window)
        self._frequency_median = RollingMedian(frequency_window)
        self._latency_average = RollingAverage(latency_window)
        self._latency_median = RollingMedian(latency_window)
        self._last_timestamp: Optional[int] = None

        self._cancel = threading.Event()
        self._loop_finished = threading.Event()
        self._windows_lock = threading.Lock()
        self._rate_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._started = False
        self._running = False
        self._disposed = False
        self._fault: Optional[BaseException] = None
        self._workers: List[threading.Thread] = []

        self._frequency_listeners: List[TelemetryListener] = []
        self._latency_listeners: List[TelemetryListener] = []
        self._rate_listeners: List[RateListener] = []

    def add_frequency_listener(self, listener: TelemetryListener) -> None:
        self._frequency_listeners.append(listener)

    def add_latency_listener(self, listener: TelemetryListener) -> None:
        self._latency_listeners.append(listener)

    def add_rate_listener(self, listener: RateListener) -> None:
        self._rate_listeners.append(listener)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def fault(self) -> Optional[BaseException]:
        return self._fault

    def start(self) -> None:
        with self._state_lock:
            if self._disposed:
                raise ProtocolError("Session has been disposed")
            if self._started:
                raise ProtocolError("Session was already started")
            self._started = True

        report_length = self._device.max_input_report_length()
        if report_length < SUB_RECORD_SIZE:
            # USB-attached controllers report 64 bytes; the timestamped batches only exist over Bluetooth.
            raise ProtocolError(f"Cannot read timestamps: max input report length is {report_length}B, "
                                f"need at least one {SUB_RECORD_SIZE}B sub-record")
        offset = timestamp_offset_for(self._device.product_id)

        stream = self._device.open()
        with self._state_lock:
            if self._disposed:
                stream.close()
                raise ProtocolError("Session was disposed while opening the device")
            self._stream = stream
            self._running = True
            self._workers = [
                threading.Thread(target=self._run_loop,
                                 args=("reader", self._read_loop, stream, report_length, offset),
                                 name="pshidinfo-reader", daemon=True),
                threading.Thread(target=self._run_loop, args=("prober", self._probe_loop, stream),
                                 name="pshidinfo-prober", daemon=True),
            ]
            for worker in self._workers:
                worker.start()

        logger.info(f"Session started for product 0x{self._device.product_id:04X} "
                    f"(report {report_length}B, timestamp offset {offset})")

        self._loop_finished.wait()
        self._running = False
        self._cancel.set()

        if self._fault is not None:
            raise self._fault
        logger.info("Session stopped")

    def stop(self) -> None:
        self._cancel.set()

    def set_rate(self, rate: PollRate) -> None:
        """Send the reset-then-apply rate command pair and clear all statistics.

        There is no read-back: if the first write lands and the second fails,
        the controller is left at its native rate.
        """
        rate = PollRate(rate)
        with self._rate_lock:
            stream = self._stream
            if stream is None or self._disposed:
                raise ProtocolError("Cannot set poll rate: session is not open")

            report = build_rate_report(0)
            logger.debug(f"Rate reset report: {report.hex()}")
            stream.set_feature_report(report)
            stream.flush()

            build_rate_report(int(rate), report)
            logger.debug(f"Rate apply report: {report.hex()}")
            stream.set_feature_report(report)
            stream.flush()

            with self._windows_lock:
                self._frequency_average.reset()
                self._frequency_median.reset()
                self._latency_average.reset()
                self._latency_median.reset()

        logger.info(f"Poll rate set to {rate.label} (code {int(rate)})")
        self._notify(self._rate_listeners, rate)

    def dispose(self) -> None:
        with self._state_lock:
            if self._disposed:
                return
            self._disposed = True
            stream, self._stream = self._stream, None
            workers = list(self._workers)

        self._cancel.set()
        self._running = False
        # The stream must outlive any transfer still in flight on a worker.
        current = threading.current_thread()
        for worker in workers:
            if worker is current:
                continue
            worker.join(JOIN_TIMEOUT_S)
            if worker.is_alive():
                logger.warning(f"{worker.name} still busy after {JOIN_TIMEOUT_S}s, closing stream anyway")
        if stream is not None:
            try:
                stream.close()
            except TransportError as e:
                logger.warning(f"Error closing device stream: {e}")
        logger.info("Session disposed")

    def __enter__(self) -> "DeviceSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def _run_loop(self, name: str, loop: Callable[..., None], *args) -> None:
        try:
            loop(*args)
            logger.info(f"{name} loop finished")
        except SessionCancelled:
            logger.debug(f"{name} loop cancelled")
        except Exception as e:
            if self._cancel.is_set():
                logger.debug(f"{name} loop ended during teardown: {e}")
            else:
                logger.error(f"{name} loop failed: {e}", exc_info=True)
                with self._state_lock:
                    if self._fault is None:
                        self._fault = e
        finally:
            self._loop_finished.set()

    def _read_loop(self, stream: DeviceStream, report_length: int, offset: int) -> None:
        buffer = bytearray(report_length)
        while not self._cancel.is_set():
            try:
                length = stream.read(buffer, self._read_timeout_ms)
            except ReportTimeoutError:
                continue
            except StreamClosedError:
                logger.info("Input stream closed")
                return
            if self._cancel.is_set():
                raise SessionCancelled()
            for sample in self._process_input_report(buffer, length, offset):
                self._notify(self._frequency_listeners, sample)

    def _process_input_report(self, report: bytearray, length: int, offset: int) -> List[TelemetrySample]:
        samples: List[TelemetrySample] = []
        for timestamp in iter_timestamps(report, length, offset):
            last = self._last_timestamp
            self._last_timestamp = timestamp
            if last is None or timestamp == last:
                continue
            frequency = ticks_to_frequency(tick_delta(timestamp, last))
            with self._windows_lock:
                self._frequency_average.add(frequency)
                self._frequency_median.add(self._frequency_average.average)
                samples.append(TelemetrySample(self._frequency_median.median,
                                               self._frequency_median.deviation,
                                               self._frequency_average.average))
        return samples

    def _probe_loop(self, stream: DeviceStream) -> None:
        report = bytearray(LATENCY_REPORT_SIZE)
        while not self._cancel.is_set():
            fill_latency_probe(report)
            started = time.perf_counter()
            try:
                stream.get_feature_report(report)
            except ReportTimeoutError:
                logger.warning("Latency probe timed out, skipping sample")
                self._sleep(self._probe_interval)
                continue
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            if self._cancel.is_set():
                raise SessionCancelled()

            with self._windows_lock:
                self._latency_average.add(elapsed_ms)
                self._latency_median.add(self._latency_average.average)
                sample = TelemetrySample(self._latency_median.median,
                                         self._latency_median.deviation,
                                         self._latency_average.average)
            self._notify(self._latency_listeners, sample)
            self._sleep(self._probe_interval)

    def _sleep(self, seconds: float) -> None:
        if self._cancel.wait(seconds):
            raise SessionCancelled()

    def _notify(self, listeners: List[Callable[[T], None]], value: T) -> None:
        for listener in list(listeners):
            try:
                listener(value)
            except Exception as e:
                logger.error(f"Listener {listener!r} failed: {e}", exc_info=True)
