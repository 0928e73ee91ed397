import logging
import threading
from typing import List, Optional

import usb.core
import usb.util

from pshidinfo.errors import ReportTimeoutError, StreamClosedError, TransportError
from pshidinfo.reports import SONY_VENDOR_ID

logger = logging.getLogger(__name__)

BM_REQUEST_TYPE_GET_FEATURE_HID_CLASS: int = 0xA1
BM_REQUEST_TYPE_SET_FEATURE_HID_CLASS: int = 0x21
BREQUEST_GET_REPORT: int = 0x01
BREQUEST_SET_REPORT: int = 0x09
WVALUE_HIGH_FEATURE: int = (3 << 8)

CONTROL_TIMEOUT_MS: int = 1000
DEFAULT_READ_TIMEOUT_MS: int = 200

_TIMEOUT_ERRNOS: set[int] = {110, 10060}
_NO_DEVICE_ERRNOS: set[int] = {5, 19}


def _is_timeout(e: usb.core.USBError) -> bool:
    return (isinstance(e, usb.core.USBTimeoutError) or e.errno in _TIMEOUT_ERRNOS
            or 'TIMEOUT' in str(e).upper())


def _is_busy(e: usb.core.USBError) -> bool:
    return e.errno == 16 or 'BUSY' in str(e).upper()


class UsbHidStream:
    """Open HID interface: interrupt-IN reads plus feature reports over the control pipe."""

    def __init__(self, dev: usb.core.Device, intf_num: int, ep_in: usb.core.Endpoint,
                 detached_kernel_driver: bool = False) -> None:
        self._dev = dev
        self._intf_num = intf_num
        self._ep_in = ep_in
        self._detached_kernel_driver = detached_kernel_driver
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, buffer: bytearray, timeout_ms: Optional[int] = None) -> int:
        if self._closed:
            raise StreamClosedError("Stream is closed")
        timeout = DEFAULT_READ_TIMEOUT_MS if timeout_ms is None else timeout_ms
        try:
            data = self._dev.read(self._ep_in.bEndpointAddress, len(buffer), timeout=timeout)
        except usb.core.USBError as e:
            if self._closed:
                raise StreamClosedError(f"Stream closed during read: {e}") from e
            if _is_timeout(e):
                raise ReportTimeoutError(f"No input report within {timeout} ms") from e
            if e.errno in _NO_DEVICE_ERRNOS or 'NO_DEVICE' in str(e).upper():
                raise TransportError(f"Device disconnected or I/O error: {e}") from e
            raise TransportError(f"Input report read failed: {e}") from e
        length = min(len(data), len(buffer))
        buffer[:length] = bytes(data[:length])
        return length

    def get_feature_report(self, buffer: bytearray) -> int:
        """Issue GET_REPORT(Feature) for the report ID in ``buffer[0]`` and copy the reply back in."""
        self._check_open()
        report_id = buffer[0]
        try:
            response = self._dev.ctrl_transfer(
                BM_REQUEST_TYPE_GET_FEATURE_HID_CLASS, BREQUEST_GET_REPORT,
                WVALUE_HIGH_FEATURE | report_id, self._intf_num, len(buffer),
                timeout=CONTROL_TIMEOUT_MS)
        except usb.core.USBError as e:
            raise self._translate(e, f"GET_REPORT 0x{report_id:02X}") from e
        length = min(len(response), len(buffer))
        buffer[:length] = bytes(response[:length])
        return length

    def set_feature_report(self, buffer: bytearray) -> int:
        self._check_open()
        report_id = buffer[0]
        try:
            written = self._dev.ctrl_transfer(
                BM_REQUEST_TYPE_SET_FEATURE_HID_CLASS, BREQUEST_SET_REPORT,
                WVALUE_HIGH_FEATURE | report_id, self._intf_num, bytes(buffer),
                timeout=CONTROL_TIMEOUT_MS)
        except usb.core.USBError as e:
            raise self._translate(e, f"SET_REPORT 0x{report_id:02X}") from e
        logger.debug(f"SET_REPORT 0x{report_id:02X} OK ({written} bytes)")
        return written

    def flush(self) -> None:
        # Control transfers complete synchronously; nothing is buffered host-side.
        self._check_open()

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            logger.info(f"Releasing interface {self._intf_num}...")
            usb.util.release_interface(self._dev, self._intf_num)
            if self._detached_kernel_driver:
                try:
                    self._dev.attach_kernel_driver(self._intf_num)
                except usb.core.USBError as e:
                    logger.warning(f"Could not reattach kernel driver: {e}")
        except usb.core.USBError as e:
            raise TransportError(f"Releasing interface {self._intf_num} failed: {e}") from e
        finally:
            usb.util.dispose_resources(self._dev)
            logger.info("USB resources disposed.")

    def _check_open(self) -> None:
        if self._closed:
            raise StreamClosedError("Stream is closed")

    def _translate(self, e: usb.core.USBError, what: str) -> TransportError:
        if self._closed:
            return StreamClosedError(f"{what} aborted, stream closed: {e}")
        if _is_timeout(e):
            return ReportTimeoutError(f"{what} timed out: {e}")
        return TransportError(f"{what} failed: {e}")


class UsbHidDevice:
    """Borrowed pyusb device, opened as a HID stream for the lifetime of one session."""

    def __init__(self, dev: usb.core.Device, intf_num: int = 0) -> None:
        self._dev = dev
        self._intf_num = intf_num

    @property
    def product_id(self) -> int:
        return self._dev.idProduct

    @property
    def vendor_id(self) -> int:
        return self._dev.idVendor

    def describe(self) -> str:
        name = None
        try:
            if self._dev.iProduct:
                name = usb.util.get_string(self._dev, self._dev.iProduct)
        except (usb.core.USBError, ValueError, NotImplementedError) as e:
            logger.debug(f"Could not read product string: {e}")
        label = name or "HID device"
        return f"{label} ({self.vendor_id:04x}:{self.product_id:04x}) bus {self._dev.bus} addr {self._dev.address}"

    def max_input_report_length(self) -> int:
        ep_in = self._find_input_endpoint()
        return ep_in.wMaxPacketSize if ep_in is not None else 0

    def open(self) -> UsbHidStream:
        dev = self._dev
        try:
            dev.set_configuration()
        except usb.core.USBError as e:
            if _is_busy(e):
                logger.debug("Device already configured or resource busy, proceeding.")
            else:
                raise TransportError(f"Failed to set_configuration: {e}") from e

        ep_in = self._find_input_endpoint()
        if ep_in is None:
            raise TransportError("Interrupt IN endpoint not found on the interface!")

        detached = False
        try:
            if dev.is_kernel_driver_active(self._intf_num):
                logger.info(f"Detaching kernel driver from interface {self._intf_num}...")
                dev.detach_kernel_driver(self._intf_num)
                detached = True
        except (usb.core.USBError, NotImplementedError) as e:
            logger.warning(f"Could not detach kernel driver (may not be critical): {e}")

        try:
            usb.util.claim_interface(dev, self._intf_num)
            logger.info(f"Interface {self._intf_num} claimed.")
        except usb.core.USBError as e:
            if not _is_busy(e):
                raise TransportError(f"Failed to claim interface {self._intf_num}: {e}") from e
            logger.debug(f"Interface {self._intf_num} already claimed or busy, proceeding: {e}")

        logger.info(f"Interrupt IN endpoint 0x{ep_in.bEndpointAddress:02x} found (MaxPacketSize: {ep_in.wMaxPacketSize}B)")
        return UsbHidStream(dev, self._intf_num, ep_in, detached)

    def _find_input_endpoint(self) -> Optional[usb.core.Endpoint]:
        try:
            try:
                cfg = self._dev.get_active_configuration()
            except usb.core.USBError as e:
                logger.debug(f"No active configuration yet ({e}), using the first descriptor")
                cfg = self._dev[0]
            intf_desc = cfg[(self._intf_num, 0)]
        except (usb.core.USBError, IndexError, KeyError) as e:
            logger.debug(f"No interface {self._intf_num} descriptor available: {e}")
            return None
        return usb.util.find_descriptor(
            intf_desc,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress) == usb.util.ENDPOINT_IN and
                                   usb.util.endpoint_type(e.bmAttributes) == usb.util.ENDPOINT_TYPE_INTR)


def find_devices(vendor_id: int = SONY_VENDOR_ID) -> List[UsbHidDevice]:
    try:
        found = usb.core.find(find_all=True, idVendor=vendor_id)
    except usb.core.NoBackendError as e:
        raise TransportError(f"No libusb backend available: {e}") from e
    devices = [UsbHidDevice(dev) for dev in found]
    logger.info(f"Found {len(devices)} device(s) with vendor ID 0x{vendor_id:04X}")
    return devices
