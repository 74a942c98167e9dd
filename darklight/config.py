# DarkLight Configuration Constants
from dataclasses import dataclass

# Serial Settings
SERIAL_BAUDRATE = 115200
SERIAL_TIMEOUT_S = 5.0   # Per-attempt wait for the first response byte
DEFAULT_PORT = "/dev/ttyUSB0"

# Connection & Logic
MAX_RETRIES = 3
POLL_INTERVAL_S = 1.0

# Framing
FRAME_START = "<"
FRAME_END = ">"

# Handshake
CMD_HANDSHAKE = "Z"
HANDSHAKE_REPLY = "?"

# Light Panel
STABILIZE_TIME_DEFAULT_MS = 2000
STABILIZE_TIME_MIN_MS = 2000
STABILIZE_TIME_MAX_MS = 10000
MAX_NUMERIC_REPLY_LEN = 3  # Brightness / preset values are at most 3 digits


@dataclass(frozen=True)
class SessionConfig:
    """
    Typed session defaults supplied by the control surface at connect.
    The controller applies them during discovery; it never persists them.
    """
    stabilize_time_ms: int = STABILIZE_TIME_DEFAULT_MS
    auto_on: bool = False
    light_disabled: bool = True
    auto_heat_on: bool = False
    heat_on_close: bool = False
    poll_interval_s: float = POLL_INTERVAL_S

    def __post_init__(self):
        if self.auto_heat_on and self.heat_on_close:
            raise ValueError("auto_heat_on and heat_on_close are mutually exclusive")
        if not STABILIZE_TIME_MIN_MS <= self.stabilize_time_ms <= STABILIZE_TIME_MAX_MS:
            raise ValueError(
                f"stabilize_time_ms must be within "
                f"[{STABILIZE_TIME_MIN_MS}, {STABILIZE_TIME_MAX_MS}], got {self.stabilize_time_ms}"
            )
        if self.poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be positive")
