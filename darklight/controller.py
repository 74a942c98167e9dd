import threading
import logging

from . import config
from .dispatcher import CommandDispatcher, Op, Outcome
from .errors import ChannelIOError, InterlockError, RangeError
from .models import CalibratorState, CoverState, HeaterState
from .poller import StatePoller
from .state import DeviceState
from .transport import SerialChannel


class CoverCalibrator:
    """
    Facade used by the control surface.
    Every user operation runs its guard check, wire exchange and state update
    under self.lock; the poller takes the same lock per refresh, so a poll
    correction can never land between a command and its local effect.
    """

    def __init__(self, session=None, channel=None):
        self.session = session or config.SessionConfig()
        self.channel = channel or SerialChannel()
        self.dispatcher = CommandDispatcher(self.channel)
        self.state = DeviceState()
        self.poller = StatePoller(self, self.session.poll_interval_s)
        self.lock = threading.RLock()
        self.is_connected = False
        self.port = None

    def connect(self, port, baud=config.SERIAL_BAUDRATE, start_polling=True):
        """
        Connect to the cover calibrator.
        1. Open port.
        2. Handshake: send 'Z', expect '?'. Failure or mismatch aborts.
        3. Discover which subsystems are present and push session settings.
        4. Start the background poller.
        """
        self.port = port
        logging.info(f"Connecting to {port} at {baud}...")

        with self.lock:
            try:
                self.channel.open(port, baud)
                outcome = self.dispatcher.handshake()
                if not outcome.ok:
                    raise ConnectionError(f"Handshake failed: {outcome.error}. Check baud rate")
                self.is_connected = True
                self._discover()
            except Exception as e:
                self.is_connected = False
                self.channel.close()
                self.state.reset()
                logging.error(f"Connection failed: {e}")
                if isinstance(e, ConnectionError):
                    raise
                raise ConnectionError(f"Failed to connect on {port}: {e}") from e

        logging.info(f"Connected to {port}.")
        if start_polling:
            self.poller.start()
        return True

    def _discover(self):
        self.refresh_cover()
        if not self.state.cover_present():
            logging.info("Cover is reported as Not Present")

        self.refresh_calibrator()
        if self.state.calibrator_present():
            self.set_stabilize_time(self.session.stabilize_time_ms)
            self.set_auto_on(self.session.auto_on)
            self.set_light_disabled(self.session.light_disabled)
            logging.debug("Getting Max Brightness")
            self._execute(Op.GET_MAX_BRIGHTNESS, self.dispatcher.get_max_brightness)
            if self.state.calibrator_observed and self.state.light_is_on():
                self.refresh_brightness()
        else:
            logging.info("Light panel is reported as Not Present")

        self.refresh_heater()
        if self.state.heater_present():
            if self.session.auto_heat_on:
                self.set_auto_heat(True)
            elif self.session.heat_on_close:
                self.set_heat_on_close(True)
        else:
            logging.info("Heater is reported as Not Present")

    def disconnect(self):
        # Poller first: it may be waiting on self.lock
        self.poller.stop()
        with self.lock:
            self.channel.close()
            self.is_connected = False
            self.state.reset()
        logging.info("Disconnected.")

    def snapshot(self):
        return self.state.snapshot()

    def _execute(self, op, send, *args):
        """Send via the dispatcher and fold the result into state. Caller holds self.lock."""
        if not self.is_connected:
            logging.warning("Must connect first")
            return Outcome.failed(op, ChannelIOError("Not connected"))
        outcome = send(*args)
        self.state.apply(outcome)
        return outcome

    @staticmethod
    def _refuse(op, error):
        logging.warning(str(error))
        return Outcome.failed(op, error)

    # ========================================================================
    # QUERIES (used by the poller and after commands)
    # ========================================================================

    def refresh_cover(self):
        with self.lock:
            logging.debug("Get CoverState")
            return self._execute(Op.GET_COVER_STATE, self.dispatcher.get_cover_state)

    def refresh_calibrator(self):
        with self.lock:
            logging.debug("Get CalibratorState")
            return self._execute(Op.GET_CALIBRATOR_STATE, self.dispatcher.get_calibrator_state)

    def refresh_brightness(self):
        with self.lock:
            logging.debug("Getting Brightness")
            return self._execute(Op.GET_BRIGHTNESS, self.dispatcher.get_brightness)

    def refresh_heater(self):
        with self.lock:
            logging.debug("Get HeaterState")
            return self._execute(Op.GET_HEATER_STATE, self.dispatcher.get_heater_state)

    # ========================================================================
    # COVER
    # ========================================================================

    def open_cover(self):
        with self.lock:
            if self.state.cover in (CoverState.OPEN, CoverState.MOVING):
                return Outcome.skip(Op.OPEN)
            logging.info("Opening Cover")
            outcome = self._execute(Op.OPEN, self.dispatcher.open_cover)
            if not outcome.ok:
                logging.warning("Open command failed")
            elif self.state.calibrator not in (CalibratorState.NOT_PRESENT, CalibratorState.OFF):
                self.refresh_calibrator()
                self.refresh_brightness()
            return outcome

    def close_cover(self):
        with self.lock:
            if self.state.cover in (CoverState.CLOSED, CoverState.MOVING):
                return Outcome.skip(Op.CLOSE)
            logging.info("Closing Cover")
            outcome = self._execute(Op.CLOSE, self.dispatcher.close_cover)
            if not outcome.ok:
                logging.warning("Close command failed")
            return outcome

    def halt_cover(self):
        with self.lock:
            if self.state.cover is not CoverState.MOVING:
                return Outcome.skip(Op.HALT)
            logging.info("Halting Cover")
            outcome = self._execute(Op.HALT, self.dispatcher.halt_cover)
            if not outcome.ok:
                logging.warning("Halt command failed")
            return outcome

    # ========================================================================
    # LIGHT PANEL
    # ========================================================================

    def turn_light_on(self):
        """Light at max brightness, subject to the disable-while-open interlock."""
        with self.lock:
            if not self.state.light_on_allowed():
                return self._refuse(Op.SET_BRIGHTNESS,
                                    InterlockError("Light is set to disabled while cover is OPEN"))
            if self.state.calibrator is not CalibratorState.OFF:
                return Outcome.skip(Op.SET_BRIGHTNESS)
            logging.info("Turning Light ON")
            return self._execute(Op.SET_BRIGHTNESS, self.dispatcher.set_brightness,
                                 0, self.state.max_brightness())

    def turn_light_off(self):
        with self.lock:
            if self.state.calibrator is CalibratorState.OFF:
                return Outcome.skip(Op.LIGHT_OFF)
            logging.info("Turning Light OFF")
            outcome = self._execute(Op.LIGHT_OFF, self.dispatcher.turn_light_off)
            if not outcome.ok:
                logging.warning("Turn light OFF command failed")
            return outcome

    def set_brightness(self, value):
        with self.lock:
            if not self.state.light_on_allowed():
                return self._refuse(Op.SET_BRIGHTNESS,
                                    InterlockError("Light disabled while cover is OPEN"))
            logging.info(f"Setting brightness to {value}")
            return self._execute(Op.SET_BRIGHTNESS, self.dispatcher.set_brightness,
                                 int(value), self.state.max_brightness())

    def adjust_brightness(self, delta):
        """Step the current brightness by `delta`, staying within [1, max]."""
        with self.lock:
            if not self.state.light_is_on():
                return self._refuse(Op.SET_BRIGHTNESS, InterlockError("Must turn Light ON"))
            snap = self.state.snapshot()
            target = snap.brightness.current + int(delta)
            if target < 1:
                return self._refuse(Op.SET_BRIGHTNESS, RangeError("Brightness cannot go below 1"))
            if target > snap.brightness.max:
                return self._refuse(Op.SET_BRIGHTNESS, RangeError("Cannot go above Max Brightness"))
            return self.set_brightness(target)

    def save_preset(self, band):
        with self.lock:
            if not self.state.light_is_on():
                return self._refuse(Op.SAVE_PRESET, InterlockError("Must turn light on to save"))
            logging.info(f"Saving {band} brightness preset")
            return self._execute(Op.SAVE_PRESET, self.dispatcher.save_preset, band)

    def recall_preset(self, band):
        """
        Two transactions: read the stored preset, then apply it with SetBrightness.
        Returns the SetBrightness outcome, or the failed recall outcome.
        """
        with self.lock:
            if not self.state.light_is_on():
                return self._refuse(Op.RECALL_PRESET,
                                    InterlockError("Must turn light on to go to preset value"))
            logging.info(f"Setting Brightness to {band} preset")
            recalled = self._execute(Op.RECALL_PRESET, self.dispatcher.recall_preset, band)
            if not recalled.ok:
                return recalled
            return self.set_brightness(recalled.value)

    def set_stabilize_time(self, ms):
        with self.lock:
            logging.debug(f"Setting StabilizeTime to {ms} ms")
            return self._execute(Op.SET_STABILIZE_TIME, self.dispatcher.set_stabilize_time, int(ms))

    def set_auto_on(self, enabled):
        with self.lock:
            logging.debug(f"Setting AutoOn {bool(enabled)}")
            return self._execute(Op.SET_AUTO_ON, self.dispatcher.set_auto_on, enabled)

    def set_light_disabled(self, disabled):
        """Local interlock only; nothing goes over the wire."""
        self.state.set_light_disabled(disabled)

    # ========================================================================
    # HEATER
    # ========================================================================

    def set_auto_heat(self, enabled):
        with self.lock:
            logging.info("Setting heater to AUTO" if enabled else "Turning OFF auto heating")
            outcome = self._execute(Op.SET_AUTO_HEAT, self.dispatcher.set_auto_heat, enabled)
            if outcome.ok and enabled:
                logging.info("Auto control of heating enabled")
            return outcome

    def set_heat_on_close(self, enabled):
        with self.lock:
            logging.info("Setting heater to turn ON at CLOSE" if enabled else "Turning heat on close OFF")
            outcome = self._execute(Op.SET_HEAT_ON_CLOSE, self.dispatcher.set_heat_on_close, enabled)
            if outcome.ok and enabled:
                logging.info("Heater set to turn ON after cover closes")
            return outcome

    def turn_heater_on(self):
        with self.lock:
            if self.state.heater is HeaterState.ON:
                return Outcome.skip(Op.HEATER_ON)
            if self.state.heater is HeaterState.ERROR:
                return self._refuse(Op.HEATER_ON, InterlockError("Heater reports Error; not turning it ON"))
            logging.info("Turning heater ON")
            outcome = self._execute(Op.HEATER_ON, self.dispatcher.turn_heater_on)
            if outcome.ok:
                self.refresh_heater()
            return outcome

    def turn_heater_off(self):
        with self.lock:
            # An Error state is never taken as already off
            if self.state.heater is HeaterState.OFF:
                return Outcome.skip(Op.HEATER_OFF)
            logging.info("Turning heater OFF")
            outcome = self._execute(Op.HEATER_OFF, self.dispatcher.turn_heater_off)
            if outcome.ok:
                self.refresh_heater()
            return outcome
