"""Composition root: builds each runtime component once and wires them together."""

from __future__ import annotations

import threading

from dub.core import config as core_config
from dub.core import credentials
from dub.core.config import RuntimeOptions
from dub.core.errors import ErrorReporter
from dub.core.health import HealthMonitor
from dub.core.logsink import LogSink
from dub.core.recording import RecordingController
from dub.core.security import SecretStore
from dub.platform.base import AudioSource, UiShell, Updater

REPORT_DELAY_SECONDS = 10


def _default_audio_source(audio_config):
    # PyAudio is only loaded when a real microphone is needed
    from dub.core.audio import PyAudioSource

    return PyAudioSource(audio_config)


class Runtime:
    """Owns the log sink, secret store, health monitor, fault boundary and recorder."""

    def __init__(
        self,
        shell: UiShell | None = None,
        options: RuntimeOptions | None = None,
        config=None,
        audio_source: AudioSource | None = None,
        updater: Updater | None = None,
        log_dir=None,
        temp_dir=None,
        master_key_path=None,
    ):
        self.shell = shell
        self.options = options or RuntimeOptions.from_env()
        self.config = config if config is not None else core_config.load_config()
        development = not self.options.production

        self.log = LogSink(
            log_dir if log_dir is not None else core_config.LOG_DIR,
            level=self.options.log_level,
            development=development,
        )
        self.secrets = SecretStore()
        self.health = HealthMonitor(
            self.log,
            update_checks_enabled=self.options.update_checks_active,
            update_check_interval_ms=self.options.update_check_interval_ms,
        )
        self.reporter = ErrorReporter(self.log, self.health, shell=shell, development=development)

        audio_config = self.config["audio"]
        self.recorder = RecordingController(
            audio_source if audio_source is not None else _default_audio_source(audio_config),
            self.log,
            shell=shell,
            config=audio_config,
            temp_dir=temp_dir,
        )
        self.updater = updater
        self._master_key_path = master_key_path
        self._master_key = None
        self._report_timer = None
        self.started = False

    def start(self, loop=None):
        """Install the fault boundary and start background telemetry."""
        if self.started:
            return
        self.reporter.install(loop=loop)
        if self.updater is not None:
            self.health.attach_updater(self.updater)
        self.health.start()

        self._report_timer = threading.Timer(
            REPORT_DELAY_SECONDS,
            self.reporter.wrap_async(self.health.generate_report, "HealthReport"),
        )
        self._report_timer.daemon = True
        self._report_timer.start()

        self.started = True
        self.log.info(
            "dub runtime started",
            {"production": self.options.production, "log_level": self.log.threshold},
        )

    def shutdown(self):
        """Stop any active recording, then tear down timers, hooks and log files."""
        if self.recorder.is_recording:
            self.recorder.stop()
        if self._report_timer is not None:
            self._report_timer.cancel()
            self._report_timer = None
        self.health.stop()
        self.reporter.uninstall()
        self.log.info("dub runtime stopped")
        self.log.close()
        self.started = False

    # ---- recording ----

    def toggle_recording(self):
        return self.recorder.toggle()

    def delete_audio_file(self, path) -> dict:
        return self.recorder.delete_audio_file(path)

    def list_input_devices(self) -> list:
        """Input devices offered by the audio source; empty if it cannot enumerate."""
        lister = getattr(self.recorder.source, "list_input_devices", None)
        if lister is None:
            return []
        try:
            return lister()
        except Exception as exc:
            self.log.warn(f"Failed to list input devices: {exc}")
            return []

    def select_input_device(self, device_index) -> bool:
        """Switch the capture device for future sessions and persist the choice."""
        selector = getattr(self.recorder.source, "set_device", None)
        if selector is None:
            return False
        selector(device_index)
        core_config.set_path(self.config, "audio.input_device", device_index)
        return core_config.save_config(self.config)

    # ---- credentials ----

    @property
    def master_key(self) -> str:
        if self._master_key is None:
            self._master_key = credentials.load_or_create_master_key(
                self.secrets, path=self._master_key_path
            )
        return self._master_key

    def save_api_key(self, provider, api_key) -> dict:
        try:
            return credentials.save_api_key(
                self.config, provider, api_key, self.secrets, self.master_key, self.log
            )
        except Exception as exc:
            return self.reporter.handle_error("save_api_key", exc)

    def get_api_key(self, provider):
        try:
            return credentials.load_api_key(
                self.config, provider, self.secrets, self.master_key, self.log
            )
        except Exception as exc:
            self.reporter.handle_error("get_api_key", exc)
            return None
