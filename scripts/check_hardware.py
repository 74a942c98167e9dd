import sys
import logging
# Add project root to path
sys.path.append(".")

from darklight import config, utils
from darklight.controller import CoverCalibrator
from darklight.models import PresetBand
from darklight.transport import SerialChannel


def report(outcome):
    if outcome.skipped:
        print(">> SKIPPED (already in that state)")
    elif outcome.ok:
        print(f">> OK {'' if outcome.value is None else outcome.value}")
    else:
        print(f">> FAILED: {outcome.error}")


def show_status(ctrl):
    snap = ctrl.snapshot()
    print(f"--- Status @ {utils.get_timestamp_iso()} ---")
    print(f"Cover:  {snap.cover.label}")
    print(f"Light:  {snap.calibrator.label} ({snap.brightness.current}/{snap.brightness.max})")
    print(f"Heater: {snap.heater.label} (mode {snap.heater_mode.value})")
    flags = snap.flags
    print(f"Flags:  moving={flags.cover_is_moving} ready={flags.light_is_ready} auto_on={flags.auto_on} "
          f"auto_heat={flags.auto_heat_on} heat_on_close={flags.heat_on_close} light_disabled={flags.light_disabled}")


def ask_int(prompt):
    try:
        return int(input(prompt))
    except ValueError:
        print("Invalid integer")
        return None


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    print("=== DarkLight Hardware Check ===")
    ports = SerialChannel.list_ports()
    if ports:
        print(f"Available ports: {', '.join(ports)}")
    port = input(f"Enter serial port (default {config.DEFAULT_PORT}): ").strip() or config.DEFAULT_PORT

    # Interactive checks poll on demand with [s]
    ctrl = CoverCalibrator(config.SessionConfig(light_disabled=False))

    print(f"Connecting to {port}...")
    try:
        ctrl.connect(port, start_polling=False)
        print("Connected!")
        show_status(ctrl)
    except ConnectionError as e:
        print(f"Connection Failed: {e}")
        return

    while True:
        print("\n--- MENU ---")
        print("[o] Open cover     [c] Close cover    [h] Halt cover")
        print("[1] Light ON       [0] Light OFF      [b] Set brightness   [+/-] Adjust")
        print("[gb/gn] Go to Broadband/Narrowband preset   [db/dn] Save preset")
        print("[w] Heater ON      [x] Heater OFF     [a] Toggle auto heat [e] Toggle heat on close")
        print("[t] Stabilize time [s] Refresh & status")
        print("[q] Quit")

        choice = input("Select: ").strip().lower()

        if choice == 'q':
            ctrl.disconnect()
            break

        elif choice == 'o':
            report(ctrl.open_cover())
        elif choice == 'c':
            report(ctrl.close_cover())
        elif choice == 'h':
            report(ctrl.halt_cover())

        elif choice == '1':
            report(ctrl.turn_light_on())
        elif choice == '0':
            report(ctrl.turn_light_off())
        elif choice == 'b':
            value = ask_int("Brightness (0 = max): ")
            if value is not None:
                report(ctrl.set_brightness(value))
        elif choice in ('+', '-'):
            report(ctrl.adjust_brightness(1 if choice == '+' else -1))
        elif choice in ('gb', 'gn', 'db', 'dn'):
            band = PresetBand(choice[1].upper())
            report(ctrl.recall_preset(band) if choice[0] == 'g' else ctrl.save_preset(band))

        elif choice == 'w':
            report(ctrl.turn_heater_on())
        elif choice == 'x':
            report(ctrl.turn_heater_off())
        elif choice == 'a':
            report(ctrl.set_auto_heat(not ctrl.snapshot().flags.auto_heat_on))
        elif choice == 'e':
            report(ctrl.set_heat_on_close(not ctrl.snapshot().flags.heat_on_close))

        elif choice == 't':
            ms = ask_int(f"Stabilize time ms ({config.STABILIZE_TIME_MIN_MS}-{config.STABILIZE_TIME_MAX_MS}): ")
            if ms is not None:
                report(ctrl.set_stabilize_time(ms))

        elif choice == 's':
            sent = ctrl.poller.poll_once()
            print(f"({sent} refresh transaction(s))")
            show_status(ctrl)

        else:
            print("Unknown command")


if __name__ == "__main__":
    main()
