import logging
from PyQt6.QtCore import QObject, QThread, pyqtSignal

from darklight.errors import DeviceError


class CommandThread(QThread):
    """
    Runs one controller call off the GUI thread.
    A single transaction can block for up to retries x timeout seconds.
    """
    finished_ok = pyqtSignal(object)   # Outcome (or whatever the call returned)
    error_occurred = pyqtSignal(str)

    def __init__(self, label, fn, *args):
        super().__init__()
        self.label = label
        self.fn = fn
        self.args = args

    def run(self):
        try:
            result = self.fn(*self.args)
        except (DeviceError, ConnectionError) as e:
            self.error_occurred.emit(f"{self.label}: {e}")
            return
        except Exception as e:
            logging.exception(f"{self.label} crashed")
            self.error_occurred.emit(f"{self.label} Error: {str(e)}")
            return

        # Outcomes carry their own failure; surface it like an exception
        error = getattr(result, "error", None)
        if error is not None:
            self.error_occurred.emit(f"{self.label}: {error}")
        else:
            self.finished_ok.emit(result)


class StateBridge(QObject):
    """
    DeviceState listeners run on whichever thread mutated the state
    (poller or CommandThread). Re-emit as a queued Qt signal so widgets
    are only touched on the GUI thread.
    """
    changed = pyqtSignal(object)  # DeviceSnapshot

    def attach(self, state):
        state.subscribe(self._forward)

    def detach(self, state):
        state.unsubscribe(self._forward)

    def _forward(self, snapshot):
        self.changed.emit(snapshot)


class _LogSignal(QObject):
    record_emitted = pyqtSignal(str, str)  # level, message


class QtLogHandler(logging.Handler):
    """Forwards log records into the log pane via a queued signal."""

    def __init__(self):
        super().__init__()
        self.bridge = _LogSignal()

    def emit(self, record):
        try:
            self.bridge.record_emitted.emit(record.levelname, self.format(record))
        except RuntimeError:
            # Window already destroyed during shutdown
            pass
