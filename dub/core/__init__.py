"""Core platform-agnostic runtime support.

``dub.core.audio`` is not re-exported here so that importing the core does
not require PyAudio.
"""

from dub.core.config import (
    CONFIG_DIR,
    CONFIG_FILE,
    DEFAULT_CONFIG,
    LOG_DIR,
    RuntimeOptions,
    get_path,
    load_config,
    normalize_config,
    save_config,
    set_path,
)
from dub.core.errors import CrashFault, ErrorReporter
from dub.core.health import HealthMonitor, HealthStatus, HealthThresholds, MetricSample
from dub.core.logsink import LogSink
from dub.core.recording import CaptureError, RecordingController
from dub.core.security import DecryptionError, EncryptedSecret, EncryptionError, SecretStore
from dub.core.state import RecordingState, STATE_DESCRIPTIONS
from dub.core import credentials

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "DEFAULT_CONFIG",
    "LOG_DIR",
    "RuntimeOptions",
    "get_path",
    "load_config",
    "normalize_config",
    "save_config",
    "set_path",
    "CrashFault",
    "ErrorReporter",
    "HealthMonitor",
    "HealthStatus",
    "HealthThresholds",
    "MetricSample",
    "LogSink",
    "CaptureError",
    "RecordingController",
    "DecryptionError",
    "EncryptedSecret",
    "EncryptionError",
    "SecretStore",
    "RecordingState",
    "STATE_DESCRIPTIONS",
    "credentials",
]
