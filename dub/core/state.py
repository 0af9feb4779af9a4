"""Recording state machine values."""

from enum import Enum


class RecordingState(str, Enum):
    """States of the capture session state machine."""

    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"
    ERROR = "error"


STATE_DESCRIPTIONS = {
    RecordingState.IDLE: "dub - Ready",
    RecordingState.RECORDING: "dub - Recording...",
    RecordingState.STOPPING: "dub - Processing...",
    RecordingState.ERROR: "dub - Recording failed",
}

# Lifecycle events sent to the presentation layer.
EVENT_STARTED = "recording-started"
EVENT_STOPPED = "recording-stopped"
EVENT_ERROR = "recording-error"
