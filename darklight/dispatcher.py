import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from . import config, utils
from .errors import DeviceError, ProtocolError, RangeError, TransportError
from .models import CalibratorState, Command, CoverState, HeaterState, PresetBand


class Op(Enum):
    HANDSHAKE = "Handshake"
    OPEN = "Open"
    CLOSE = "Close"
    HALT = "Halt"
    LIGHT_OFF = "TurnLightOff"
    SET_BRIGHTNESS = "SetBrightness"
    GET_BRIGHTNESS = "GetBrightness"
    GET_MAX_BRIGHTNESS = "GetMaxBrightness"
    GET_COVER_STATE = "GetCoverState"
    GET_CALIBRATOR_STATE = "GetCalibratorState"
    GET_HEATER_STATE = "GetHeaterState"
    SET_AUTO_ON = "SetAutoOn"
    SET_AUTO_HEAT = "SetAutoHeat"
    SET_HEAT_ON_CLOSE = "SetHeatOnClose"
    HEATER_ON = "TurnHeaterOn"
    HEATER_OFF = "TurnHeaterOff"
    SAVE_PRESET = "SavePreset"
    RECALL_PRESET = "RecallPreset"
    SET_STABILIZE_TIME = "SetStabilizeTime"


@dataclass(frozen=True)
class Outcome:
    """
    Result of one semantic operation.
    value: decoded reply for queries, the requested setting for SETs.
    error: TransportError / ProtocolError / RangeError / InterlockError, or None on success.
    skipped: the guard found the device already in the requested state; nothing was sent.
    """
    op: Op
    value: Any = None
    error: Optional[DeviceError] = None
    skipped: bool = False

    @property
    def ok(self):
        return self.error is None

    @classmethod
    def failed(cls, op, error, value=None):
        return cls(op, value=value, error=error)

    @classmethod
    def skip(cls, op, value=None):
        return cls(op, value=value, skipped=True)


class CommandDispatcher:
    """
    Maps semantic operations onto wire commands and decodes the replies.
    Never raises for wire or decode failures; those come back inside the Outcome.
    """

    def __init__(self, channel):
        self.channel = channel

    def _exchange(self, op, command, decode=None, value=None):
        try:
            payload = self.channel.send(command)
        except TransportError as e:
            logging.warning(f"{op.value} command failed: {e}")
            return Outcome.failed(op, e, value=value)

        logging.debug(f"{op.value} response: {payload}")
        if decode is None:
            # Plain acknowledgment; content is not inspected
            return Outcome(op, value=value)
        try:
            return Outcome(op, value=decode(payload))
        except ProtocolError as e:
            logging.warning(f"{op.value}: {e} (payload={e.payload!r})")
            return Outcome.failed(op, e)

    # --- Connection ---

    def handshake(self):
        def decode(payload):
            if payload[:1] != config.HANDSHAKE_REPLY:
                raise ProtocolError(
                    f"Invalid handshake response. Expected '{config.HANDSHAKE_REPLY}'", payload=payload
                )
            return payload

        return self._exchange(Op.HANDSHAKE, Command(config.CMD_HANDSHAKE), decode)

    # --- Cover ---

    def open_cover(self):
        return self._exchange(Op.OPEN, Command("O"))

    def close_cover(self):
        return self._exchange(Op.CLOSE, Command("C"))

    def halt_cover(self):
        return self._exchange(Op.HALT, Command("H"))

    def get_cover_state(self):
        return self._exchange(Op.GET_COVER_STATE, Command("P"),
                              lambda p: utils.parse_status_digit(p, CoverState))

    # --- Calibrator ---

    def turn_light_off(self):
        return self._exchange(Op.LIGHT_OFF, Command("F"))

    def set_brightness(self, value, max_brightness):
        """
        T{v}. 0 means 'use max'. Anything outside [1, max] is refused before transmission.
        """
        if value == 0:
            value = max_brightness
        if not 1 <= value <= max_brightness:
            err = RangeError(f"Brightness {value} outside [1, {max_brightness}]")
            logging.warning(str(err))
            return Outcome.failed(Op.SET_BRIGHTNESS, err, value=value)
        return self._exchange(Op.SET_BRIGHTNESS, Command("T", int(value)), value=int(value))

    def get_brightness(self):
        return self._exchange(Op.GET_BRIGHTNESS, Command("B"), utils.parse_number)

    def get_max_brightness(self):
        return self._exchange(Op.GET_MAX_BRIGHTNESS, Command("M"), utils.parse_number)

    def get_calibrator_state(self):
        return self._exchange(Op.GET_CALIBRATOR_STATE, Command("L"),
                              lambda p: utils.parse_status_digit(p, CalibratorState))

    def save_preset(self, band):
        band = PresetBand(band)
        return self._exchange(Op.SAVE_PRESET, Command("D" + band.value), value=band)

    def recall_preset(self, band):
        """Read a stored preset. Applying it is a separate SetBrightness transaction."""
        band = PresetBand(band)
        return self._exchange(Op.RECALL_PRESET, Command("G" + band.value), utils.parse_number)

    def set_stabilize_time(self, ms):
        if not config.STABILIZE_TIME_MIN_MS <= ms <= config.STABILIZE_TIME_MAX_MS:
            err = RangeError(
                f"Stabilize time {ms} ms outside "
                f"[{config.STABILIZE_TIME_MIN_MS}, {config.STABILIZE_TIME_MAX_MS}]"
            )
            logging.warning(str(err))
            return Outcome.failed(Op.SET_STABILIZE_TIME, err, value=ms)
        return self._exchange(Op.SET_STABILIZE_TIME, Command("S", int(ms)), value=int(ms))

    def set_auto_on(self, enabled):
        return self._exchange(Op.SET_AUTO_ON, Command("A" if enabled else "a"), value=bool(enabled))

    # --- Heater ---

    def get_heater_state(self):
        return self._exchange(Op.GET_HEATER_STATE, Command("R"),
                              lambda p: utils.parse_status_digit(p, HeaterState))

    def set_auto_heat(self, enabled):
        return self._exchange(Op.SET_AUTO_HEAT, Command("Q" if enabled else "q"), value=bool(enabled))

    def set_heat_on_close(self, enabled):
        return self._exchange(Op.SET_HEAT_ON_CLOSE, Command("E" if enabled else "e"), value=bool(enabled))

    def turn_heater_on(self):
        return self._exchange(Op.HEATER_ON, Command("W"))

    def turn_heater_off(self):
        return self._exchange(Op.HEATER_OFF, Command("w"))
