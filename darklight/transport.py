import logging
import threading
from enum import Enum

import serial
import serial.tools.list_ports

from . import config
from .errors import ChannelIOError, ChannelTimeoutError


class Phase(Enum):
    WRITE = "write"
    AWAIT_READABLE = "await_readable"
    READ = "read"
    DONE = "done"
    RETRY = "retry"
    FAILED = "failed"


# (phase, event) -> next phase. DONE / RETRY / FAILED end the attempt.
TRANSITIONS = {
    (Phase.WRITE, "written"): Phase.AWAIT_READABLE,
    (Phase.WRITE, "write_error"): Phase.FAILED,
    (Phase.AWAIT_READABLE, "readable"): Phase.READ,
    (Phase.AWAIT_READABLE, "terminated"): Phase.DONE,
    (Phase.AWAIT_READABLE, "timeout"): Phase.RETRY,
    (Phase.AWAIT_READABLE, "read_error"): Phase.RETRY,
    (Phase.READ, "terminated"): Phase.DONE,
    (Phase.READ, "read_error"): Phase.RETRY,
}


class _Attempt:
    """Scratch data for one write/await/read pass."""

    def __init__(self, number):
        self.number = number
        self.raw = b""
        self.error = None


class SerialChannel:
    """
    Exclusive command/response channel over a serial line.
    One transaction (write + framed read) at a time; other callers block on the lock.
    """

    def __init__(self, ser=None):
        self.ser = ser
        self.port = None
        self.lock = threading.Lock()

    @staticmethod
    def list_ports():
        return sorted(p.device for p in serial.tools.list_ports.comports())

    def open(self, port, baud=config.SERIAL_BAUDRATE):
        logging.info(f"Opening {port} at {baud}...")
        with self.lock:
            try:
                self.ser = serial.Serial(port, baud, timeout=config.SERIAL_TIMEOUT_S)
            except (serial.SerialException, OSError) as e:
                self.ser = None
                raise ChannelIOError(f"Port {port} unavailable: {e}") from e
            self.port = port
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()

    def close(self):
        with self.lock:
            if self.ser and self.ser.is_open:
                self.ser.close()
            self.ser = None

    @property
    def is_open(self):
        return bool(self.ser) and bool(self.ser.is_open)

    def send(self, command):
        """
        Run one framed transaction for `command` and return the response payload.
        Raises ChannelIOError when the port is closed or the write fails (never retried),
        ChannelTimeoutError when every attempt times out or hits a read error.
        """
        frame = command.frame()
        with self.lock:
            if not self.is_open:
                raise ChannelIOError("Serial port is not open")
            self.ser.timeout = command.timeout
            logging.debug(f"Sending command: {frame.decode('ascii')}")

            for number in range(1, command.max_retries + 1):
                attempt = self._run_attempt(command, frame, number)
                if attempt.error is None:
                    return self._payload(attempt.raw)

            logging.error(f"Maximum retry attempts reached for {command.text}. Transmission failed.")
            raise ChannelTimeoutError(
                f"No response to {command.text} after {command.max_retries} attempts",
                attempts=command.max_retries,
            )

    # --- per-attempt state machine ---

    def _run_attempt(self, command, frame, number):
        attempt = _Attempt(number)
        phase = Phase.WRITE
        while phase not in (Phase.DONE, Phase.RETRY, Phase.FAILED):
            if phase is Phase.WRITE:
                event = self._write(frame, attempt)
            elif phase is Phase.AWAIT_READABLE:
                event = self._await_readable(command, attempt)
            else:
                event = self._read(command, attempt)
            phase = TRANSITIONS[(phase, event)]

        if phase is Phase.FAILED:
            raise ChannelIOError(f"Write failed for {command.text}: {attempt.error}") from attempt.error
        if phase is Phase.RETRY:
            logging.warning(
                f"{attempt.error} cmd={command.text} (attempt {number}/{command.max_retries})"
            )
        return attempt

    def _write(self, frame, attempt):
        try:
            # Drop stale bytes left over from an earlier, abandoned attempt
            self.ser.reset_input_buffer()
            self.ser.write(frame)
            self.ser.flush()
        except (serial.SerialException, OSError) as e:
            logging.error(f"Serial write error: {e}")
            attempt.error = e
            return "write_error"
        return "written"

    def _await_readable(self, command, attempt):
        try:
            first = self.ser.read(1)
        except (serial.SerialException, OSError) as e:
            logging.error(f"Serial read error: {e}")
            attempt.error = e
            return "read_error"
        if not first:
            attempt.error = "Serial read timed out"
            return "timeout"
        attempt.raw = first
        if first == command.terminator.encode("ascii"):
            return "terminated"
        return "readable"

    def _read(self, command, attempt):
        terminator = command.terminator.encode("ascii")
        try:
            rest = self.ser.read_until(terminator)
        except (serial.SerialException, OSError) as e:
            logging.error(f"Serial read error: {e}")
            attempt.error = e
            return "read_error"
        attempt.raw += rest
        if not attempt.raw.endswith(terminator):
            attempt.error = f"Unterminated response {attempt.raw!r}"
            return "read_error"
        return "terminated"

    @staticmethod
    def _payload(raw):
        logging.debug(f"Response received: {raw!r}")
        # Strip the leading marker byte and the terminator
        inner = raw[1:-1] if len(raw) > 1 else b""
        return inner.decode("ascii", errors="replace")
