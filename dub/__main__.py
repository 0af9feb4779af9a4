"""Menu bar entry point: ``python -m dub``."""

import rumps

from dub.core.config import RuntimeOptions
from dub.core.state import (
    EVENT_ERROR,
    EVENT_STARTED,
    EVENT_STOPPED,
    RecordingState,
    STATE_DESCRIPTIONS,
)
from dub.platform.macos import MacOSUiShell
from dub.runtime import Runtime

IDLE_TITLE = "🎤"
RECORDING_TITLE = "🔴"


class DubApp(rumps.App):
    def __init__(self):
        super().__init__("dub", icon=None, title=IDLE_TITLE, quit_button=None)
        self.status_item = rumps.MenuItem(STATE_DESCRIPTIONS[RecordingState.IDLE])
        self.record_item = rumps.MenuItem("Start Recording", callback=self.toggle_recording)
        self.device_menu = rumps.MenuItem("Input Device")
        self.menu = [
            self.status_item,
            None,
            self.record_item,
            self.device_menu,
            None,
            rumps.MenuItem("Quit", callback=self.quit_app),
        ]
        self.shell = MacOSUiShell(listener=self.on_recording_event)
        self.runtime = Runtime(self.shell, options=RuntimeOptions.from_env())
        self._populate_device_menu()

    def on_recording_event(self, event, *args):
        if event == EVENT_STARTED:
            self._show(RecordingState.RECORDING, RECORDING_TITLE, "Stop Recording")
        elif event == EVENT_STOPPED:
            self._show(RecordingState.STOPPING, IDLE_TITLE, "Start Recording")
            self.shell.show_notification("dub", f"Recording saved to {args[0]}")
        elif event == EVENT_ERROR:
            self._show(RecordingState.ERROR, IDLE_TITLE, "Start Recording")
            self.shell.show_notification("dub", f"Recording failed: {args[0] if args else ''}")

    def _show(self, state, title, record_label):
        self.title = title
        self.status_item.title = STATE_DESCRIPTIONS[state]
        self.record_item.title = record_label

    def _populate_device_menu(self):
        for key in list(self.device_menu.keys()):
            del self.device_menu[key]

        selected = self.runtime.config["audio"].get("input_device")
        default_item = rumps.MenuItem("System Default", callback=self.select_device)
        default_item.device_index = None
        self.device_menu.add(default_item)
        for device in self.runtime.list_input_devices():
            item = rumps.MenuItem(device["name"][:40], callback=self.select_device)
            item.device_index = device["index"]
            self.device_menu.add(item)
        self._mark_device(selected)

    def _mark_device(self, device_index):
        for item in self.device_menu.values():
            item.state = 1 if getattr(item, "device_index", None) == device_index else 0

    def select_device(self, sender):
        device_index = getattr(sender, "device_index", None)
        if self.runtime.select_input_device(device_index):
            self._mark_device(device_index)

    def toggle_recording(self, _sender):
        self.runtime.toggle_recording()

    def quit_app(self, _sender):
        self.runtime.shutdown()
        rumps.quit_application()


def main():
    app = DubApp()
    app.runtime.start()
    app.shell.show_notification("dub", "Ready. Use the menu bar to record.")
    app.run()


if __name__ == "__main__":
    main()
