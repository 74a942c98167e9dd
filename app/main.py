import sys
import os
import logging
from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QLabel, QPushButton, QComboBox, QGroupBox, QSpinBox, QCheckBox,
    QTextEdit, QFileDialog, QMessageBox, QFrame, QGridLayout
)
from PyQt6.QtGui import QIcon

# Add project root to path
sys.path.append(".")

from darklight import config
from darklight.controller import CoverCalibrator
from darklight.models import CalibratorState, CoverState, HeaterMode, HeaterState, PresetBand
from darklight.transport import SerialChannel
from app.workers import CommandThread, QtLogHandler, StateBridge

# --- UI STATES ---
STATE_DISCONNECTED = "DISCONNECTED"
STATE_CONNECTING = "CONNECTING"
STATE_DISCONNECTING = "DISCONNECTING"
STATE_CONNECTED = "CONNECTED"
STATE_ERROR = "ERROR"

STATUS_STYLE = "font-size: 16px; font-weight: bold; color: {};"
STATE_COLORS = {
    STATE_DISCONNECTED: "gray",
    STATE_CONNECTING: "blue",
    STATE_DISCONNECTING: "blue",
    STATE_CONNECTED: "green",
    STATE_ERROR: "darkred",
}


class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("DarkLight Cover Calibrator")
        icon_path = os.path.join(os.path.dirname(__file__), "assets", "icon.ico")
        if os.path.isfile(icon_path):
            self.setWindowIcon(QIcon(icon_path))
        self.resize(900, 700)

        # 1. Init Base State & UI (Required for Logging)
        self.current_state = STATE_DISCONNECTED
        self.init_ui()
        self.init_logging()

        # --- Logic Objects ---
        self.ctrl = None
        self.bridge = StateBridge()
        self.bridge.changed.connect(self.on_state_changed)
        self.threads = []

        # Initial UI Update
        self.update_state_ui(STATE_DISCONNECTED)
        self.on_state_changed(None)

    def init_ui(self):
        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QVBoxLayout(central_widget)
        main_layout.setContentsMargins(5, 5, 5, 5)
        main_layout.setSpacing(5)

        # 0. LOGGING (Must be first)
        self.log_text = QTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setMaximumHeight(180)

        # 1. TOP: STATUS BAR
        main_layout.addWidget(self.create_status_bar())

        # 2. MIDDLE: Left = connection & options, Right = device controls
        content_layout = QHBoxLayout()

        left_panel = QVBoxLayout()
        left_panel.addWidget(self.create_connection_group())
        left_panel.addWidget(self.create_options_group())
        left_panel.addStretch()
        content_layout.addLayout(left_panel, 1)

        right_panel = QVBoxLayout()
        right_panel.addWidget(self.create_cover_group())
        right_panel.addWidget(self.create_light_group())
        right_panel.addWidget(self.create_heater_group())
        right_panel.addStretch()
        content_layout.addLayout(right_panel, 2)

        main_layout.addLayout(content_layout)

        # 3. BOTTOM: LOG
        log_layout = QHBoxLayout()
        self.btn_log_copy = QPushButton("Copy Log")
        self.btn_log_copy.clicked.connect(self.on_log_copy)
        self.btn_log_save = QPushButton("Save Log")
        self.btn_log_save.clicked.connect(self.on_log_save)
        log_layout.addStretch()
        log_layout.addWidget(self.btn_log_copy)
        log_layout.addWidget(self.btn_log_save)

        main_layout.addWidget(self.log_text)
        main_layout.addLayout(log_layout)

    def init_logging(self):
        """Redirect the root logger into the log pane."""
        self.log_handler = QtLogHandler()
        self.log_handler.setFormatter(logging.Formatter("[%(asctime)s][%(levelname)s] %(message)s", "%H:%M:%S"))
        self.log_handler.bridge.record_emitted.connect(self.append_log)
        root = logging.getLogger()
        root.addHandler(self.log_handler)
        root.setLevel(logging.INFO)

    def log(self, msg, level=logging.INFO):
        logging.log(level, msg)

    def append_log(self, level, line):
        if level in ("ERROR", "CRITICAL"):
            line = f'<span style="color: red;">{line}</span>'
        elif level == "WARNING":
            line = f'<span style="color: darkorange;">{line}</span>'
        self.log_text.append(line)
        sb = self.log_text.verticalScrollBar()
        sb.setValue(sb.maximum())

    # --- UI CREATION HELPERS ---

    def create_status_bar(self):
        frame = QFrame()
        frame.setFrameShape(QFrame.Shape.StyledPanel)
        frame.setStyleSheet("background-color: #eee; border: 1px solid #ccc;")
        layout = QHBoxLayout(frame)

        self.lbl_status = QLabel("Device: DISCONNECTED")
        self.lbl_status.setStyleSheet(STATUS_STYLE.format("gray"))

        self.lbl_info = QLabel(" | Cover: -- | Light: -- | Heater: --")
        self.lbl_info.setStyleSheet("font-size: 14px; color: #333;")

        layout.addWidget(self.lbl_status)
        layout.addWidget(self.lbl_info)
        layout.addStretch()
        return frame

    def create_connection_group(self):
        grp = QGroupBox("Connection")
        layout = QGridLayout()

        layout.addWidget(QLabel("Port:"), 0, 0)
        self.cmb_port = QComboBox()
        self.cmb_port.setEditable(True)
        layout.addWidget(self.cmb_port, 0, 1)

        self.btn_refresh = QPushButton("Refresh")
        self.btn_refresh.setToolTip("Refresh serial ports")
        self.btn_refresh.clicked.connect(self.on_refresh_ports)
        layout.addWidget(self.btn_refresh, 0, 2)

        self.btn_connect = QPushButton("Connect")
        self.btn_connect.clicked.connect(self.on_toggle_connect)
        layout.addWidget(self.btn_connect, 1, 0, 1, 3)

        self.on_refresh_ports()  # Populate initially
        grp.setLayout(layout)
        return grp

    def create_options_group(self):
        grp = QGroupBox("Options")
        layout = QGridLayout()

        layout.addWidget(QLabel("Stabilize Time (ms):"), 0, 0)
        self.spin_stabilize = QSpinBox()
        self.spin_stabilize.setRange(config.STABILIZE_TIME_MIN_MS, config.STABILIZE_TIME_MAX_MS)
        self.spin_stabilize.setSingleStep(500)
        self.spin_stabilize.setValue(config.STABILIZE_TIME_DEFAULT_MS)
        self.spin_stabilize.editingFinished.connect(self.on_stabilize_time)
        layout.addWidget(self.spin_stabilize, 0, 1)

        self.chk_auto_on = QCheckBox("Light on after Close")
        self.chk_auto_on.toggled.connect(self.on_auto_on)
        layout.addWidget(self.chk_auto_on, 1, 0, 1, 2)

        self.chk_light_disabled = QCheckBox("Disable light while Open")
        self.chk_light_disabled.setChecked(True)
        self.chk_light_disabled.toggled.connect(self.on_light_disabled)
        layout.addWidget(self.chk_light_disabled, 2, 0, 1, 2)

        self.chk_auto_heat = QCheckBox("Auto heat")
        self.chk_auto_heat.toggled.connect(self.on_auto_heat)
        layout.addWidget(self.chk_auto_heat, 3, 0, 1, 2)

        self.chk_heat_on_close = QCheckBox("Heat on Close")
        self.chk_heat_on_close.toggled.connect(self.on_heat_on_close)
        layout.addWidget(self.chk_heat_on_close, 4, 0, 1, 2)

        grp.setLayout(layout)
        return grp

    def create_cover_group(self):
        grp = QGroupBox("Dust Cover")
        layout = QGridLayout()

        self.lbl_cover = QLabel("State: --")
        layout.addWidget(self.lbl_cover, 0, 0, 1, 3)

        self.btn_open = QPushButton("Open")
        self.btn_open.clicked.connect(lambda: self.run_command("Open", self.ctrl.open_cover))
        self.btn_close = QPushButton("Close")
        self.btn_close.clicked.connect(lambda: self.run_command("Close", self.ctrl.close_cover))
        self.btn_halt = QPushButton("Halt")
        self.btn_halt.setStyleSheet("background-color: red; color: white; font-weight: bold;")
        self.btn_halt.clicked.connect(lambda: self.run_command("Halt", self.ctrl.halt_cover))

        layout.addWidget(self.btn_open, 1, 0)
        layout.addWidget(self.btn_close, 1, 1)
        layout.addWidget(self.btn_halt, 1, 2)

        grp.setLayout(layout)
        self.grp_cover = grp
        return grp

    def create_light_group(self):
        grp = QGroupBox("Light Panel")
        layout = QGridLayout()

        self.lbl_light = QLabel("State: --")
        layout.addWidget(self.lbl_light, 0, 0, 1, 2)
        self.lbl_brightness = QLabel("Brightness: -- / --")
        layout.addWidget(self.lbl_brightness, 0, 2, 1, 2)

        self.btn_light_on = QPushButton("Light On")
        self.btn_light_on.clicked.connect(lambda: self.run_command("Light On", self.ctrl.turn_light_on))
        self.btn_light_off = QPushButton("Light Off")
        self.btn_light_off.clicked.connect(lambda: self.run_command("Light Off", self.ctrl.turn_light_off))
        layout.addWidget(self.btn_light_on, 1, 0, 1, 2)
        layout.addWidget(self.btn_light_off, 1, 2, 1, 2)

        layout.addWidget(QLabel("Brightness:"), 2, 0)
        self.spin_brightness = QSpinBox()
        self.spin_brightness.setRange(1, 255)
        layout.addWidget(self.spin_brightness, 2, 1)
        self.btn_set_brightness = QPushButton("Set")
        self.btn_set_brightness.clicked.connect(self.on_set_brightness)
        layout.addWidget(self.btn_set_brightness, 2, 2)

        adjust_box = QHBoxLayout()
        self.btn_dim = QPushButton("-")
        self.btn_dim.clicked.connect(lambda: self.run_command("Brightness -1", self.ctrl.adjust_brightness, -1))
        self.btn_brighten = QPushButton("+")
        self.btn_brighten.clicked.connect(lambda: self.run_command("Brightness +1", self.ctrl.adjust_brightness, 1))
        adjust_box.addWidget(self.btn_dim)
        adjust_box.addWidget(self.btn_brighten)
        adjust_widget = QWidget()
        adjust_widget.setLayout(adjust_box)
        layout.addWidget(adjust_widget, 2, 3)

        # Presets: recall + save per band
        self.preset_buttons = []
        for row, band in ((3, PresetBand.BROADBAND), (4, PresetBand.NARROWBAND)):
            name = band.name.capitalize()
            layout.addWidget(QLabel(f"{name} preset:"), row, 0)
            btn_go = QPushButton("Go")
            btn_go.clicked.connect(lambda _, b=band: self.run_command(f"Recall {b.name}", self.ctrl.recall_preset, b))
            btn_save = QPushButton("Save")
            btn_save.clicked.connect(lambda _, b=band: self.run_command(f"Save {b.name}", self.ctrl.save_preset, b))
            layout.addWidget(btn_go, row, 1)
            layout.addWidget(btn_save, row, 2)
            self.preset_buttons.extend([btn_go, btn_save])

        grp.setLayout(layout)
        self.grp_light = grp
        return grp

    def create_heater_group(self):
        grp = QGroupBox("Heater")
        layout = QGridLayout()

        self.lbl_heater = QLabel("State: --")
        layout.addWidget(self.lbl_heater, 0, 0)
        self.lbl_heater_mode = QLabel("Mode: --")
        layout.addWidget(self.lbl_heater_mode, 0, 1)

        self.btn_heater_on = QPushButton("Heater On")
        self.btn_heater_on.clicked.connect(lambda: self.run_command("Heater On", self.ctrl.turn_heater_on))
        self.btn_heater_off = QPushButton("Heater Off")
        self.btn_heater_off.clicked.connect(lambda: self.run_command("Heater Off", self.ctrl.turn_heater_off))
        layout.addWidget(self.btn_heater_on, 1, 0)
        layout.addWidget(self.btn_heater_off, 1, 1)

        grp.setLayout(layout)
        self.grp_heater = grp
        return grp

    # --- COMMAND PLUMBING ---

    def run_command(self, label, fn, *args):
        if self.ctrl is None or not self.ctrl.is_connected:
            self.log("Not connected.", logging.WARNING)
            return
        thread = CommandThread(label, fn, *args)
        thread.finished_ok.connect(lambda result: self.on_command_ok(label, result))
        thread.error_occurred.connect(self.on_command_error)
        self.track(thread)

    def track(self, thread):
        thread.finished.connect(lambda: self.threads.remove(thread) if thread in self.threads else None)
        self.threads.append(thread)
        thread.start()

    def on_command_ok(self, label, result):
        if getattr(result, "skipped", False):
            self.log(f"{label}: nothing to do")

    def on_command_error(self, msg):
        self.log(msg, logging.WARNING)

    # --- LOGIC SLOTS ---

    def on_refresh_ports(self):
        self.cmb_port.clear()
        for dev in SerialChannel.list_ports():
            self.cmb_port.addItem(dev)
        if self.cmb_port.count() == 0:
            self.cmb_port.addItem(config.DEFAULT_PORT)
        self.log("Serial ports refreshed.")

    def session_from_ui(self):
        return config.SessionConfig(
            stabilize_time_ms=self.spin_stabilize.value(),
            auto_on=self.chk_auto_on.isChecked(),
            light_disabled=self.chk_light_disabled.isChecked(),
            auto_heat_on=self.chk_auto_heat.isChecked(),
            heat_on_close=self.chk_heat_on_close.isChecked() and not self.chk_auto_heat.isChecked(),
        )

    def on_toggle_connect(self):
        if self.ctrl and self.ctrl.is_connected:
            self.bridge.detach(self.ctrl.state)
            self.update_state_ui(STATE_DISCONNECTING)
            self.on_state_changed(None)
            thread = CommandThread("Disconnect", self.ctrl.disconnect)
            thread.finished_ok.connect(self.on_disconnected)
            thread.error_occurred.connect(self.on_disconnected)
            self.track(thread)
            return

        port = self.cmb_port.currentText().strip()
        if not port:
            QMessageBox.warning(self, "No Port", "Please select a serial port.")
            return

        self.ctrl = CoverCalibrator(self.session_from_ui())
        self.bridge.attach(self.ctrl.state)
        self.update_state_ui(STATE_CONNECTING)
        thread = CommandThread("Connect", self.ctrl.connect, port)
        thread.finished_ok.connect(self.on_connected)
        thread.error_occurred.connect(self.on_connect_failed)
        self.track(thread)

    def on_disconnected(self, _result=None):
        self.ctrl = None
        self.update_state_ui(STATE_DISCONNECTED)
        self.on_state_changed(None)

    def on_connected(self, _result):
        self.update_state_ui(STATE_CONNECTED)
        self.on_state_changed(self.ctrl.snapshot())

    def on_connect_failed(self, msg):
        if self.ctrl:
            self.bridge.detach(self.ctrl.state)
        self.ctrl = None
        self.update_state_ui(STATE_ERROR)
        QMessageBox.critical(self, "Connection Failed", msg)

    def on_set_brightness(self):
        self.run_command("Set Brightness", self.ctrl.set_brightness, self.spin_brightness.value())

    def on_stabilize_time(self):
        if self.ctrl and self.ctrl.is_connected:
            self.run_command("Stabilize Time", self.ctrl.set_stabilize_time, self.spin_stabilize.value())

    def on_auto_on(self, checked):
        if self.ctrl and self.ctrl.is_connected:
            self.run_command("Auto On", self.ctrl.set_auto_on, checked)

    def on_light_disabled(self, checked):
        if self.ctrl:
            self.ctrl.set_light_disabled(checked)
            self.on_state_changed(self.ctrl.snapshot())

    def on_auto_heat(self, checked):
        if self.ctrl and self.ctrl.is_connected:
            self.run_command("Auto Heat", self.ctrl.set_auto_heat, checked)
        elif checked:
            self.set_checked_quietly(self.chk_heat_on_close, False)

    def on_heat_on_close(self, checked):
        if self.ctrl and self.ctrl.is_connected:
            self.run_command("Heat on Close", self.ctrl.set_heat_on_close, checked)
        elif checked:
            self.set_checked_quietly(self.chk_auto_heat, False)

    @staticmethod
    def set_checked_quietly(box, checked):
        box.blockSignals(True)
        box.setChecked(checked)
        box.blockSignals(False)

    # --- STATE -> UI ---

    def on_state_changed(self, snap):
        connected = snap is not None and self.current_state == STATE_CONNECTED
        if snap is None:
            self.lbl_cover.setText("State: --")
            self.lbl_light.setText("State: --")
            self.lbl_brightness.setText("Brightness: -- / --")
            self.lbl_heater.setText("State: --")
            self.lbl_heater_mode.setText("Mode: --")
            self.lbl_info.setText(" | Cover: -- | Light: -- | Heater: --")
        else:
            self.lbl_cover.setText(f"State: {snap.cover.label}")
            self.lbl_light.setText(f"State: {snap.calibrator.label}")
            self.lbl_brightness.setText(f"Brightness: {snap.brightness.current} / {snap.brightness.max}")
            self.lbl_heater.setText(f"State: {snap.heater.label}")
            self.lbl_heater_mode.setText(f"Mode: {snap.heater_mode.value}")
            light = "ON" if snap.light_on else "OFF"
            self.lbl_info.setText(f" | Cover: {snap.cover.label} | Light: {light} | Heater: {snap.heater_mode.value}")
            if snap.brightness.max > 0:
                self.spin_brightness.setMaximum(snap.brightness.max)

            # Reflect acknowledged flags back into the options
            self.set_checked_quietly(self.chk_auto_on, snap.flags.auto_on)
            self.set_checked_quietly(self.chk_auto_heat, snap.flags.auto_heat_on)
            self.set_checked_quietly(self.chk_heat_on_close, snap.flags.heat_on_close)

        cover_ok = connected and snap.cover is not CoverState.NOT_PRESENT
        light_ok = connected and snap.calibrator is not CalibratorState.NOT_PRESENT
        heater_ok = connected and snap.heater is not HeaterState.NOT_PRESENT

        self.grp_cover.setEnabled(cover_ok)
        self.grp_light.setEnabled(light_ok)
        self.grp_heater.setEnabled(heater_ok)
        self.chk_auto_on.setEnabled(light_ok or not connected)
        self.chk_auto_heat.setEnabled(heater_ok or not connected)
        self.chk_heat_on_close.setEnabled(heater_ok or not connected)

        if light_ok:
            lit = snap.light_on
            self.btn_light_on.setEnabled(not lit)
            self.btn_light_off.setEnabled(lit)
            self.btn_dim.setEnabled(lit)
            self.btn_brighten.setEnabled(lit)
            for btn in self.preset_buttons:
                btn.setEnabled(lit)
            blocked = snap.flags.light_disabled and snap.cover is CoverState.OPEN
            self.btn_set_brightness.setEnabled(not blocked)
            if blocked:
                self.btn_light_on.setEnabled(False)

        if heater_ok:
            self.btn_heater_on.setEnabled(snap.heater_mode is not HeaterMode.ON)
            self.btn_heater_off.setEnabled(snap.heater is not HeaterState.OFF)

    def update_state_ui(self, state):
        self.current_state = state
        self.lbl_status.setText(f"Device: {state}")
        self.lbl_status.setStyleSheet(STATUS_STYLE.format(STATE_COLORS.get(state, "black")))

        self.btn_connect.setText("Disconnect" if state == STATE_CONNECTED else "Connect")
        self.btn_connect.setEnabled(state not in (STATE_CONNECTING, STATE_DISCONNECTING))
        self.cmb_port.setEnabled(state in (STATE_DISCONNECTED, STATE_ERROR))
        self.btn_refresh.setEnabled(state in (STATE_DISCONNECTED, STATE_ERROR))

    def on_log_copy(self):
        QApplication.clipboard().setText(self.log_text.toPlainText())
        self.log("Log copied to clipboard.")

    def on_log_save(self):
        path, _ = QFileDialog.getSaveFileName(self, "Save Log", "darklight_log.txt", "Text Files (*.txt);;All Files (*)")
        if path:
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.log_text.toPlainText())
            self.log(f"Log saved: {path}")

    def closeEvent(self, event):
        """Cleanup on Close"""
        self.log("Closing application...", logging.WARNING)

        for thread in list(self.threads):
            thread.wait()

        # Close Serial (stops the poller too)
        if self.ctrl:
            self.bridge.detach(self.ctrl.state)
            self.ctrl.disconnect()

        logging.getLogger().removeHandler(self.log_handler)
        event.accept()


if __name__ == "__main__":
    app = QApplication(sys.argv)
    window = MainWindow()
    window.show()
    sys.exit(app.exec())
