from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

from . import config, utils


class CoverState(IntEnum):
    NOT_PRESENT = 0
    CLOSED = 1
    MOVING = 2
    OPEN = 3
    UNKNOWN = 4
    ERROR = 5

    @property
    def is_settled(self):
        return self is not CoverState.MOVING

    @property
    def label(self):
        return _label(self)


class CalibratorState(IntEnum):
    NOT_PRESENT = 0
    OFF = 1
    NOT_READY = 2
    READY = 3
    UNKNOWN = 4
    ERROR = 5

    @property
    def is_lit(self):
        """Codes 2..5 are shown as 'light on'."""
        return self not in (CalibratorState.NOT_PRESENT, CalibratorState.OFF)

    @property
    def label(self):
        return _label(self)


class HeaterState(IntEnum):
    NOT_PRESENT = 0
    OFF = 1
    AUTO = 2
    ON = 3
    UNKNOWN = 4
    ERROR = 5
    SET = 6

    @property
    def label(self):
        return _label(self)


class HeaterMode(Enum):
    """Heater selector as presented by the control surface."""
    OFF = "Off"
    ON = "On"
    AUTO = "Auto"
    HEAT_ON_CLOSE = "Heat on Close"


class PresetBand(Enum):
    BROADBAND = "B"
    NARROWBAND = "N"


def _label(state):
    return state.name.replace("_", " ").title()


@dataclass
class Brightness:
    current: int = 0
    max: int = 0

    def contains(self, value):
        return 0 <= value <= self.max


@dataclass(frozen=True)
class Command:
    """One wire command: `<code[arg]>` answered by a `>`-terminated frame."""
    code: str
    arg: Optional[int] = None
    terminator: str = config.FRAME_END
    timeout: float = config.SERIAL_TIMEOUT_S
    max_retries: int = config.MAX_RETRIES

    def __post_init__(self):
        if not self.code or not self.code.isalpha():
            raise ValueError(f"Invalid command code: {self.code!r}")
        if self.arg is not None and self.arg < 0:
            raise ValueError(f"Command argument must be non-negative: {self.arg}")

    @property
    def text(self):
        return self.code if self.arg is None else f"{self.code}{self.arg}"

    def frame(self):
        return utils.format_command(self.code, self.arg).encode("ascii")


@dataclass
class SessionFlags:
    cover_is_moving: bool = False
    light_is_ready: bool = True
    auto_on: bool = False
    auto_heat_on: bool = False
    heat_on_close: bool = False
    light_disabled: bool = False
    heat_mode_is_changing: bool = False


@dataclass(frozen=True)
class DeviceSnapshot:
    """Immutable copy of the device state handed to display code."""
    cover: CoverState
    calibrator: CalibratorState
    heater: HeaterState
    heater_mode: HeaterMode
    brightness: Brightness
    flags: SessionFlags
    cover_observed: bool = False
    calibrator_observed: bool = False
    heater_observed: bool = False
    light_on: bool = field(init=False, default=False)

    def __post_init__(self):
        object.__setattr__(self, "light_on", self.calibrator.is_lit)
