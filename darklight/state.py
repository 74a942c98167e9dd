"""
Device State Model - authoritative cover / light panel / heater state.

All reads and writes go through one RLock. Dispatcher results are folded in
with apply(); a failed or skipped Outcome never changes anything, so local
flags only move after the device has acknowledged a command.
"""

import logging
import threading
from dataclasses import replace

from .dispatcher import Op
from .models import (
    Brightness,
    CalibratorState,
    CoverState,
    DeviceSnapshot,
    HeaterMode,
    HeaterState,
    SessionFlags,
)


class DeviceState:
    def __init__(self):
        self._lock = threading.RLock()
        self._listeners = []
        self._init_fields()

    def _init_fields(self):
        self.cover = CoverState.UNKNOWN
        self.calibrator = CalibratorState.UNKNOWN
        self.heater = HeaterState.UNKNOWN
        self.heater_mode = HeaterMode.OFF
        self.brightness = Brightness()
        self.flags = SessionFlags()
        self.cover_observed = False
        self.calibrator_observed = False
        self.heater_observed = False

    def reset(self):
        """Drop everything learned during the session (called on disconnect)."""
        with self._lock:
            self._init_fields()
        self._notify()

    # ========================================================================
    # CHANGE LISTENERS
    # ========================================================================

    def subscribe(self, callback):
        """callback(snapshot) runs after every state change, on the mutating thread."""
        with self._lock:
            self._listeners.append(callback)

    def unsubscribe(self, callback):
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _notify(self):
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        snap = self.snapshot()
        for cb in listeners:
            try:
                cb(snap)
            except Exception as e:
                logging.error(f"State listener failed: {e}")

    # ========================================================================
    # QUERIES
    # ========================================================================

    def snapshot(self):
        with self._lock:
            return DeviceSnapshot(
                cover=self.cover,
                calibrator=self.calibrator,
                heater=self.heater,
                heater_mode=self.heater_mode,
                brightness=replace(self.brightness),
                flags=replace(self.flags),
                cover_observed=self.cover_observed,
                calibrator_observed=self.calibrator_observed,
                heater_observed=self.heater_observed,
            )

    def cover_present(self):
        with self._lock:
            return self.cover is not CoverState.NOT_PRESENT

    def calibrator_present(self):
        with self._lock:
            return self.calibrator is not CalibratorState.NOT_PRESENT

    def heater_present(self):
        with self._lock:
            return self.heater is not HeaterState.NOT_PRESENT

    def light_on_allowed(self):
        """Light may be lit unless it is disabled while the cover is anything but Closed."""
        with self._lock:
            return not self.flags.light_disabled or self.cover is CoverState.CLOSED

    def light_is_on(self):
        with self._lock:
            return self.calibrator.is_lit

    def max_brightness(self):
        with self._lock:
            return self.brightness.max

    def needs_cover_poll(self):
        with self._lock:
            return self.cover_present() and (self.flags.cover_is_moving or not self.cover_observed)

    def needs_calibrator_poll(self):
        with self._lock:
            return self.calibrator_present() and not self.flags.light_is_ready

    def needs_heater_poll(self):
        with self._lock:
            return self.heater_present() and (
                self.heater_mode is not HeaterMode.OFF or self.flags.heat_mode_is_changing
            )

    # ========================================================================
    # LOCAL-ONLY SETTINGS
    # ========================================================================

    def set_light_disabled(self, disabled):
        with self._lock:
            self.flags.light_disabled = bool(disabled)
            logging.debug(f"DisableLight set to {self.flags.light_disabled}")
        self._notify()

    # ========================================================================
    # OUTCOME FOLDING
    # ========================================================================

    def apply(self, outcome):
        """
        Fold a dispatcher Outcome into state. Returns True if anything was applied.
        """
        if not outcome.ok or outcome.skipped:
            return False
        handler = self._HANDLERS.get(outcome.op)
        if handler is None:
            return False
        with self._lock:
            handler(self, outcome.value)
        self._notify()
        return True

    def _on_open(self, _value):
        self.flags.cover_is_moving = True

    def _on_close(self, _value):
        self.flags.cover_is_moving = True
        if self.flags.auto_on:
            self.flags.light_is_ready = False

    def _on_light_off(self, _value):
        self.calibrator = CalibratorState.OFF
        self.brightness.current = 0

    def _on_set_brightness(self, _value):
        self.flags.light_is_ready = False

    def _on_brightness(self, value):
        if self.brightness.contains(value):
            self.brightness.current = value
        else:
            logging.warning(f"Brightness value {value} out of range [0, {self.brightness.max}]; ignored")

    def _on_max_brightness(self, value):
        self.brightness.max = value
        if self.brightness.current > value:
            self.brightness.current = value

    def _on_cover_state(self, state):
        self.cover = state
        self.cover_observed = True
        # Moving keeps the cover on the poll list, whoever started the move
        self.flags.cover_is_moving = not state.is_settled
        if state is CoverState.CLOSED:
            logging.info("Cover is CLOSED")
            if self.flags.auto_on:
                # Firmware lights the panel on its own; nothing is sent from here.
                logging.info("Activating light")
        elif state is CoverState.OPEN:
            logging.info("Cover is OPEN")
        elif state is CoverState.UNKNOWN:
            logging.warning("Cover in UNKNOWN state")
        elif state is CoverState.ERROR:
            logging.error("Cover reported ERROR")

    def _on_calibrator_state(self, state):
        self.calibrator = state
        self.calibrator_observed = True
        if state is CalibratorState.READY:
            self.flags.light_is_ready = True

    def _on_heater_state(self, state):
        self.heater = state
        self.heater_observed = True
        if state is HeaterState.OFF:
            self.flags.heat_mode_is_changing = False
        self.heater_mode = self._mode_for(state)

    def _mode_for(self, state):
        if state in (HeaterState.OFF, HeaterState.ERROR):
            return HeaterMode.OFF
        if state is HeaterState.AUTO:
            return HeaterMode.AUTO
        if state is HeaterState.ON:
            return HeaterMode.ON
        if state is HeaterState.SET:
            return HeaterMode.HEAT_ON_CLOSE
        if state is HeaterState.UNKNOWN:
            if self.flags.auto_heat_on:
                return HeaterMode.AUTO
            if self.flags.heat_on_close:
                return HeaterMode.HEAT_ON_CLOSE
            return HeaterMode.ON
        return self.heater_mode

    def _on_auto_on(self, enabled):
        self.flags.auto_on = enabled

    def _on_auto_heat(self, enabled):
        self.flags.auto_heat_on = enabled
        if enabled:
            if self.flags.heat_on_close:
                logging.warning("Heat On Close currently enabled. Switching modes.")
            self.flags.heat_on_close = False
        self.flags.heat_mode_is_changing = True

    def _on_heat_on_close(self, enabled):
        self.flags.heat_on_close = enabled
        if enabled:
            if self.flags.auto_heat_on:
                logging.warning("Auto Heat currently enabled. Switching modes.")
            self.flags.auto_heat_on = False
        self.flags.heat_mode_is_changing = True

    def _on_heater_on(self, _value):
        self.heater_mode = HeaterMode.ON

    def _on_heater_off(self, _value):
        self.heater_mode = HeaterMode.OFF

    _HANDLERS = {
        Op.OPEN: _on_open,
        Op.CLOSE: _on_close,
        Op.HALT: _on_open,
        Op.LIGHT_OFF: _on_light_off,
        Op.SET_BRIGHTNESS: _on_set_brightness,
        Op.GET_BRIGHTNESS: _on_brightness,
        Op.GET_MAX_BRIGHTNESS: _on_max_brightness,
        Op.GET_COVER_STATE: _on_cover_state,
        Op.GET_CALIBRATOR_STATE: _on_calibrator_state,
        Op.GET_HEATER_STATE: _on_heater_state,
        Op.SET_AUTO_ON: _on_auto_on,
        Op.SET_AUTO_HEAT: _on_auto_heat,
        Op.SET_HEAT_ON_CLOSE: _on_heat_on_close,
        Op.HEATER_ON: _on_heater_on,
        Op.HEATER_OFF: _on_heater_off,
    }
