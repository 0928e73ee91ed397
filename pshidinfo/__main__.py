import argparse
import logging
import threading
import time
from typing import List, Optional

from pshidinfo import __version__
from pshidinfo.errors import SessionError
from pshidinfo.rates import RATE_LABELS, PollRate
from pshidinfo.session import DeviceSession, TelemetrySample
from pshidinfo.usb_transport import find_devices

logger = logging.getLogger("pshidinfo")

LOG_FORMAT = '[%(levelname)s] %(module)s:%(lineno)d %(message)s'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pshidinfo",
                                     description="Show polling frequency and feature-report latency of a Sony controller.")
    parser.add_argument("--list", action="store_true", help="List connected Sony devices and exit")
    parser.add_argument("--console", action="store_true", help="Print telemetry to the terminal instead of opening a window")
    parser.add_argument("--device", type=int, default=0, help="Index from --list to open in console mode")
    parser.add_argument("--rate", choices=list(RATE_LABELS.values()), help="Poll rate to apply after connecting")
    parser.add_argument("--duration", type=float, default=0.0, help="Seconds to run in console mode (0 = until Ctrl+C)")
    parser.add_argument("--log-level", default="info", help="Logging level (debug, info, warning, ...)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def list_devices() -> int:
    devices = find_devices()
    if not devices:
        print("No compatible Sony (VID 0x054C) device found.")
        return 1
    for index, device in enumerate(devices):
        print(f"[{index}] {device.describe()}")
    return 0


def run_console(device_index: int, rate: Optional[PollRate], duration: float) -> int:
    devices = find_devices()
    if not 0 <= device_index < len(devices):
        logger.error(f"No device at index {device_index} ({len(devices)} found)")
        return 1
    device = devices[device_index]

    def show(kind: str, unit: str):
        def listener(sample: TelemetrySample) -> None:
            print(f"{kind:<9} {sample.median:10.3f} {unit} median  "
                  f"{sample.deviation:8.3f} dev  {sample.average:10.3f} avg", flush=True)
        return listener

    errors: List[BaseException] = []
    with DeviceSession(device) as session:
        session.add_frequency_listener(show("frequency", "Hz"))
        session.add_latency_listener(show("latency", "ms"))
        session.add_rate_listener(lambda r: print(f"rate      {r.label} confirmed", flush=True))

        def worker() -> None:
            try:
                session.start()
            except SessionError as e:
                errors.append(e)

        thread = threading.Thread(target=worker, name="pshidinfo-session", daemon=True)
        thread.start()
        try:
            while not session.is_running and thread.is_alive():
                time.sleep(0.05)
            if rate is not None and thread.is_alive():
                session.set_rate(rate)
            thread.join(duration if duration > 0 else None)
        except KeyboardInterrupt:
            logger.info("Interrupted by user (Ctrl+C). Exiting.")
        except SessionError as e:
            errors.append(e)

    thread.join(1.0)
    for error in errors:
        logger.error(f"Device error for {device.describe()}: {error}")
    return 1 if errors else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    rate = PollRate.from_label(args.rate) if args.rate else None

    try:
        if args.list:
            return list_devices()
        if args.console:
            return run_console(args.device, rate, args.duration)
    except SessionError as e:
        logger.error(f"{e}")
        return 1

    from pshidinfo.gui import run_gui
    run_gui()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
