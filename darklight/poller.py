import logging
import threading

from . import config


class StatePoller:
    """
    Background refresh of the fields that have not settled yet.
    The next cycle is armed only after the previous one has fully finished,
    so cycles never overlap.
    """

    def __init__(self, controller, interval_s=config.POLL_INTERVAL_S):
        self.ctrl = controller
        self.interval_s = interval_s
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="darklight-poller", daemon=True)
        self._thread.start()
        logging.debug(f"Poller started ({self.interval_s}s cycle)")

    def stop(self, timeout=None):
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    def _run(self):
        while not self._stop_event.wait(self.interval_s):
            try:
                self.poll_once()
            except Exception as e:
                # A bad cycle must not kill polling; the next one retries.
                logging.error(f"Poll cycle failed: {e}")

    def poll_once(self):
        """
        Run one refresh cycle. Returns the number of wire transactions issued.
        """
        state = self.ctrl.state
        sent = 0

        if state.needs_cover_poll():
            self.ctrl.refresh_cover()
            sent += 1

        if state.needs_calibrator_poll():
            self.ctrl.refresh_calibrator()
            self.ctrl.refresh_brightness()
            sent += 2

        if state.needs_heater_poll():
            self.ctrl.refresh_heater()
            sent += 1

        if sent:
            logging.debug(f"Poll cycle issued {sent} transaction(s)")
        return sent
