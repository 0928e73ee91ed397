import logging
import queue
import threading
import tkinter as tk
from tkinter import messagebox, ttk
from typing import Any, List, Optional, Tuple

from pshidinfo.errors import SessionError
from pshidinfo.rates import ALL_RATES, PollRate
from pshidinfo.session import DeviceSession
from pshidinfo.usb_transport import UsbHidDevice, find_devices

logger = logging.getLogger(__name__)

BG_COLOR = '#1e1e1e'
FG_COLOR = '#d4d4d4'
FIELD_BG_COLOR = '#2a2a2a'
BORDER_COLOR = '#4a4a4a'
ACCENT_COLOR = '#007acc'

IDLE_TEXT = "Median ---\nDeviation ---\nAverage ---"
UPDATE_INTERVAL_MS: int = 15


def apply_dark_theme(root: tk.Tk) -> None:
    root.configure(bg=BG_COLOR)
    style = ttk.Style(root)
    try:
        style.theme_use('clam')
    except tk.TclError:
        logger.warning("Failed to set 'clam' theme, using default.")
    style.configure('.', background=BG_COLOR, foreground=FG_COLOR, borderwidth=0, relief=tk.FLAT)
    style.configure('TFrame', background=BG_COLOR)
    style.configure('TLabelframe', background=BG_COLOR, bordercolor=BORDER_COLOR,
                    borderwidth=1, relief=tk.SOLID)
    style.configure('TLabelframe.Label', background=BG_COLOR, foreground=FG_COLOR, padding=(5, 2))
    style.configure('TCombobox', fieldbackground=FIELD_BG_COLOR, foreground=FG_COLOR,
                    arrowcolor=FG_COLOR, bordercolor=BORDER_COLOR)
    style.map('TCombobox', bordercolor=[('focus', ACCENT_COLOR)],
              fieldbackground=[('readonly', FIELD_BG_COLOR)])
    style.configure('Readout.TLabel', font=("Consolas", 12))


class InspectorWindow:
    """Device picker, poll-rate picker and the two telemetry readouts."""

    def __init__(self, root: tk.Tk) -> None:
        self.root = root
        self.devices: List[UsbHidDevice] = []
        self.session: Optional[DeviceSession] = None
        # Worker threads never touch Tk; they post here and update_loop drains on the Tk thread.
        self.events: "queue.Queue[Tuple[str, DeviceSession, Any]]" = queue.Queue()

        root.title("PS HID Info")
        root.geometry("460x320")
        apply_dark_theme(root)

        top = ttk.Frame(root, padding=(10, 10, 10, 0))
        top.pack(side="top", fill="x")
        ttk.Label(top, text="Device:").grid(row=0, column=0, sticky="w", padx=(0, 5))
        self.device_var = tk.StringVar()
        self.device_box = ttk.Combobox(top, textvariable=self.device_var, state="readonly", width=44,
                                       postcommand=self.refresh_devices)
        self.device_box.grid(row=0, column=1, sticky="ew", pady=2)
        self.device_box.bind("<<ComboboxSelected>>", self.on_device_selected)

        ttk.Label(top, text="Poll rate:").grid(row=1, column=0, sticky="w", padx=(0, 5))
        self.rate_var = tk.StringVar()
        self.rate_box = ttk.Combobox(top, textvariable=self.rate_var, state="readonly", width=12,
                                     values=[rate.label for rate in ALL_RATES])
        self.rate_box.grid(row=1, column=1, sticky="w", pady=2)
        self.rate_box.bind("<<ComboboxSelected>>", self.on_rate_selected)
        top.columnconfigure(1, weight=1)

        readouts = ttk.Frame(root, padding=10)
        readouts.pack(fill="both", expand=True)
        frequency_frame = ttk.LabelFrame(readouts, text="Polling Frequency", padding=10)
        frequency_frame.pack(side="left", fill="both", expand=True, padx=(0, 5))
        latency_frame = ttk.LabelFrame(readouts, text="Feature Report Latency", padding=10)
        latency_frame.pack(side="left", fill="both", expand=True, padx=(5, 0))

        self.frequency_var = tk.StringVar(value=IDLE_TEXT)
        self.latency_var = tk.StringVar(value=IDLE_TEXT)
        ttk.Label(frequency_frame, textvariable=self.frequency_var, style='Readout.TLabel').pack(anchor="w")
        ttk.Label(latency_frame, textvariable=self.latency_var, style='Readout.TLabel').pack(anchor="w")

        self.status_var = tk.StringVar(value="Disconnected")
        ttk.Label(root, textvariable=self.status_var, padding=(10, 0, 10, 10)).pack(side="bottom", fill="x")

        root.protocol("WM_DELETE_WINDOW", self.on_close)
        self.refresh_devices(report_missing=True)
        root.after(UPDATE_INTERVAL_MS, self.update_loop)

    def refresh_devices(self, report_missing: bool = False) -> None:
        # Opening the list deselects the current device, so its session goes too.
        self.close_session()
        try:
            self.devices = find_devices()
        except SessionError as e:
            self.devices = []
            self.show_error(f"Error enumerating devices: {e}")
        self.device_box.configure(values=[device.describe() for device in self.devices])
        if not self.devices:
            self.status_var.set("No compatible Sony (VID 0x054C) device found.")
            if report_missing:
                self.show_error("No compatible Sony (VID 0x054C) device found.")

    def on_device_selected(self, event: Optional[tk.Event] = None) -> None:
        index = self.device_box.current()
        if index < 0 or index >= len(self.devices):
            return
        self.close_session()
        self.rate_var.set("")

        device = self.devices[index]
        session = DeviceSession(device)
        session.add_frequency_listener(lambda sample: self.events.put(("frequency", session, sample)))
        session.add_latency_listener(lambda sample: self.events.put(("latency", session, sample)))
        session.add_rate_listener(lambda rate: self.events.put(("rate", session, rate)))
        self.session = session
        self.status_var.set(f"Connected to {device.describe()}")
        threading.Thread(target=self._run_session, args=(session, device.describe()), daemon=True).start()

    def _run_session(self, session: DeviceSession, description: str) -> None:
        try:
            session.start()
        except SessionError as e:
            logger.error(f"Device error for {description}: {e}")
            self.events.put(("error", session, f"Device Error for {description}:\n{e}"))
        finally:
            session.dispose()
            self.events.put(("ended", session, None))

    def update_loop(self) -> None:
        if not self.root.winfo_exists():
            return
        while True:
            try:
                kind, session, payload = self.events.get_nowait()
            except queue.Empty:
                break
            if session is not self.session:
                continue
            if kind == "frequency":
                self.frequency_var.set(payload.format("Hz"))
            elif kind == "latency":
                self.latency_var.set(payload.format("ms"))
            elif kind == "rate":
                self.rate_var.set(payload.label)
            elif kind == "error":
                self.show_error(payload)
            elif kind == "ended":
                self.session = None
                self.status_var.set("Disconnected")
        self.root.after(UPDATE_INTERVAL_MS, self.update_loop)

    def on_rate_selected(self, event: Optional[tk.Event] = None) -> None:
        if self.session is None:
            return
        try:
            rate = PollRate.from_label(self.rate_var.get())
            self.session.set_rate(rate)
        except (SessionError, ValueError) as e:
            self.show_error(f"Error setting polling rate: {e}")

    def close_session(self) -> None:
        if self.session is not None:
            self.session.dispose()
            self.session = None
        self.frequency_var.set(IDLE_TEXT)
        self.latency_var.set(IDLE_TEXT)
        self.status_var.set("Disconnected")

    def show_error(self, message: str) -> None:
        messagebox.showerror("Error", message, parent=self.root)

    def on_close(self) -> None:
        logger.info("Cleaning up application resources...")
        self.close_session()
        self.root.destroy()


def run_gui() -> None:
    root = tk.Tk()
    InspectorWindow(root)
    root.mainloop()
