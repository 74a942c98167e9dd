import unittest

from darklight.dispatcher import Op, Outcome
from darklight.errors import ChannelTimeoutError, ProtocolError
from darklight.models import CalibratorState, CoverState, HeaterMode, HeaterState
from darklight.state import DeviceState


def ok(op, value=None):
    return Outcome(op, value=value)


def failed(op, value=None):
    return Outcome.failed(op, ChannelTimeoutError("no reply", attempts=3), value=value)


class TestDeviceState(unittest.TestCase):

    def setUp(self):
        self.state = DeviceState()

    def test_defaults(self):
        snap = self.state.snapshot()
        self.assertIs(snap.cover, CoverState.UNKNOWN)
        self.assertFalse(snap.cover_observed)
        self.assertTrue(snap.flags.light_is_ready)
        self.assertFalse(snap.flags.cover_is_moving)
        self.assertIs(snap.heater_mode, HeaterMode.OFF)

    def test_open_and_settle(self):
        self.state.apply(ok(Op.OPEN))
        self.assertTrue(self.state.flags.cover_is_moving)

        self.state.apply(ok(Op.GET_COVER_STATE, CoverState.MOVING))
        self.assertTrue(self.state.flags.cover_is_moving)

        for settled in (CoverState.OPEN, CoverState.CLOSED, CoverState.UNKNOWN, CoverState.ERROR):
            self.state.flags.cover_is_moving = True
            self.state.apply(ok(Op.GET_COVER_STATE, settled))
            self.assertFalse(self.state.flags.cover_is_moving)
            self.assertIs(self.state.cover, settled)

    def test_reported_moving_needs_polling(self):
        self.state.apply(ok(Op.GET_COVER_STATE, CoverState.MOVING))
        self.assertTrue(self.state.flags.cover_is_moving)
        self.assertTrue(self.state.needs_cover_poll())

    def test_close_with_auto_on_clears_light_ready(self):
        self.state.apply(ok(Op.CLOSE))
        self.assertTrue(self.state.flags.light_is_ready)

        self.state.apply(ok(Op.SET_AUTO_ON, True))
        self.state.apply(ok(Op.CLOSE))
        self.assertFalse(self.state.flags.light_is_ready)

    def test_closed_with_auto_on_only_logs(self):
        self.state.apply(ok(Op.SET_AUTO_ON, True))
        self.state.apply(ok(Op.GET_CALIBRATOR_STATE, CalibratorState.OFF))
        with self.assertLogs(level="INFO") as logs:
            self.state.apply(ok(Op.GET_COVER_STATE, CoverState.CLOSED))
        self.assertTrue(any("Activating light" in line for line in logs.output))
        self.assertIs(self.state.calibrator, CalibratorState.OFF)

    def test_failed_outcome_changes_nothing(self):
        before = self.state.snapshot()
        for op, value in ((Op.OPEN, None), (Op.SET_AUTO_HEAT, True), (Op.SET_HEAT_ON_CLOSE, True),
                          (Op.SET_AUTO_ON, True), (Op.LIGHT_OFF, None), (Op.SET_BRIGHTNESS, 10)):
            self.assertFalse(self.state.apply(failed(op, value)))
        self.assertFalse(self.state.apply(
            Outcome.failed(Op.GET_COVER_STATE, ProtocolError("Invalid CoverState response value", payload="7"))
        ))
        self.assertEqual(self.state.snapshot(), before)

    def test_skipped_outcome_changes_nothing(self):
        self.assertFalse(self.state.apply(Outcome.skip(Op.OPEN)))
        self.assertFalse(self.state.flags.cover_is_moving)

    def test_heater_modes_mutually_exclusive(self):
        self.state.apply(ok(Op.SET_HEAT_ON_CLOSE, True))
        self.assertTrue(self.state.flags.heat_on_close)

        self.state.apply(ok(Op.SET_AUTO_HEAT, True))
        self.assertTrue(self.state.flags.auto_heat_on)
        self.assertFalse(self.state.flags.heat_on_close)

        self.state.apply(ok(Op.SET_HEAT_ON_CLOSE, True))
        self.assertTrue(self.state.flags.heat_on_close)
        self.assertFalse(self.state.flags.auto_heat_on)
        self.assertTrue(self.state.flags.heat_mode_is_changing)

    def test_disabling_a_heat_mode_leaves_the_other(self):
        self.state.apply(ok(Op.SET_AUTO_HEAT, True))
        self.state.apply(ok(Op.SET_HEAT_ON_CLOSE, False))
        self.assertTrue(self.state.flags.auto_heat_on)
        self.assertFalse(self.state.flags.heat_on_close)

    def test_heater_off_clears_mode_change(self):
        self.state.apply(ok(Op.SET_AUTO_HEAT, True))
        self.state.apply(ok(Op.GET_HEATER_STATE, HeaterState.AUTO))
        self.assertTrue(self.state.flags.heat_mode_is_changing)
        self.assertIs(self.state.heater_mode, HeaterMode.AUTO)

        self.state.apply(ok(Op.GET_HEATER_STATE, HeaterState.OFF))
        self.assertFalse(self.state.flags.heat_mode_is_changing)
        self.assertIs(self.state.heater_mode, HeaterMode.OFF)

    def test_heater_mode_from_status(self):
        cases = {
            HeaterState.ON: HeaterMode.ON,
            HeaterState.SET: HeaterMode.HEAT_ON_CLOSE,
            HeaterState.ERROR: HeaterMode.OFF,
        }
        for status, mode in cases.items():
            self.state.apply(ok(Op.GET_HEATER_STATE, status))
            self.assertIs(self.state.heater_mode, mode)

        self.state.apply(ok(Op.GET_HEATER_STATE, HeaterState.UNKNOWN))
        self.assertIs(self.state.heater_mode, HeaterMode.ON)
        self.state.apply(ok(Op.SET_HEAT_ON_CLOSE, True))
        self.state.apply(ok(Op.GET_HEATER_STATE, HeaterState.UNKNOWN))
        self.assertIs(self.state.heater_mode, HeaterMode.HEAT_ON_CLOSE)

    def test_brightness_bounds(self):
        self.state.apply(ok(Op.GET_MAX_BRIGHTNESS, 100))
        self.state.apply(ok(Op.GET_BRIGHTNESS, 40))
        self.assertEqual(self.state.brightness.current, 40)

        with self.assertLogs(level="WARNING"):
            self.state.apply(ok(Op.GET_BRIGHTNESS, 150))
        self.assertEqual(self.state.brightness.current, 40)

        self.state.apply(ok(Op.GET_MAX_BRIGHTNESS, 30))
        self.assertEqual(self.state.brightness.current, 30)

    def test_light_off_and_ready(self):
        self.state.apply(ok(Op.GET_MAX_BRIGHTNESS, 100))
        self.state.apply(ok(Op.GET_BRIGHTNESS, 80))
        self.state.apply(ok(Op.SET_BRIGHTNESS, 80))
        self.assertFalse(self.state.flags.light_is_ready)

        self.state.apply(ok(Op.GET_CALIBRATOR_STATE, CalibratorState.NOT_READY))
        self.assertFalse(self.state.flags.light_is_ready)
        self.assertTrue(self.state.snapshot().light_on)
        self.state.apply(ok(Op.GET_CALIBRATOR_STATE, CalibratorState.READY))
        self.assertTrue(self.state.flags.light_is_ready)

        self.state.apply(ok(Op.LIGHT_OFF))
        snap = self.state.snapshot()
        self.assertIs(snap.calibrator, CalibratorState.OFF)
        self.assertEqual(snap.brightness.current, 0)
        self.assertFalse(snap.light_on)

    def test_light_gate(self):
        self.assertTrue(self.state.light_on_allowed())
        self.state.set_light_disabled(True)
        self.state.apply(ok(Op.GET_COVER_STATE, CoverState.OPEN))
        self.assertFalse(self.state.light_on_allowed())
        self.state.apply(ok(Op.GET_COVER_STATE, CoverState.CLOSED))
        self.assertTrue(self.state.light_on_allowed())

    def test_poll_predicates(self):
        self.assertTrue(self.state.needs_cover_poll())
        self.assertFalse(self.state.needs_calibrator_poll())
        self.assertFalse(self.state.needs_heater_poll())

        self.state.apply(ok(Op.GET_COVER_STATE, CoverState.CLOSED))
        self.assertFalse(self.state.needs_cover_poll())

        self.state.apply(ok(Op.GET_COVER_STATE, CoverState.NOT_PRESENT))
        self.state.flags.cover_is_moving = True
        self.assertFalse(self.state.needs_cover_poll())

        self.state.apply(ok(Op.HEATER_ON))
        self.assertTrue(self.state.needs_heater_poll())
        self.state.apply(ok(Op.GET_HEATER_STATE, HeaterState.NOT_PRESENT))
        self.assertFalse(self.state.needs_heater_poll())

    def test_snapshot_is_a_copy(self):
        snap = self.state.snapshot()
        self.state.apply(ok(Op.OPEN))
        self.assertFalse(snap.flags.cover_is_moving)

    def test_listeners(self):
        seen = []
        self.state.subscribe(seen.append)
        self.state.apply(ok(Op.OPEN))
        self.state.apply(failed(Op.CLOSE))
        self.assertEqual(len(seen), 1)
        self.assertTrue(seen[0].flags.cover_is_moving)

        self.state.unsubscribe(seen.append)
        self.state.apply(ok(Op.CLOSE))
        self.assertEqual(len(seen), 1)

    def test_reset(self):
        self.state.apply(ok(Op.SET_AUTO_HEAT, True))
        self.state.apply(ok(Op.GET_COVER_STATE, CoverState.OPEN))
        self.state.set_light_disabled(True)
        self.state.reset()
        snap = self.state.snapshot()
        self.assertFalse(snap.flags.auto_heat_on)
        self.assertFalse(snap.flags.light_disabled)
        self.assertIs(snap.cover, CoverState.UNKNOWN)
        self.assertFalse(snap.cover_observed)


if __name__ == '__main__':
    unittest.main()
