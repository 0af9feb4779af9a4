"""Recording session state machine."""

from __future__ import annotations

import os
import tempfile
import threading
import time
from pathlib import Path

from dub.core.config import DEFAULT_CONFIG
from dub.core.state import (
    EVENT_ERROR,
    EVENT_STARTED,
    EVENT_STOPPED,
    RecordingState,
)

SAMPLE_WIDTH = 2  # 16-bit PCM


class CaptureError(Exception):
    """The capture device could not be opened or the stream failed."""


class RecordingController:
    """Owns the single capture session and emits its lifecycle events.

    ``source`` must provide ``open(on_data, on_error)`` returning a handle
    with ``close()``. Data and error callbacks may arrive on the source's
    own thread; state and buffer are guarded by a lock and the stream is
    always torn down outside it.
    """

    def __init__(self, source, log, shell=None, config=None, temp_dir=None, clock=time.time):
        audio = dict(DEFAULT_CONFIG["audio"])
        audio.update(config or {})
        self.source = source
        self.log = log
        self.shell = shell
        self.temp_dir = temp_dir
        self._clock = clock

        max_seconds = audio.get("max_recording_seconds") or 0
        self.max_buffer_bytes = int(max_seconds * audio["rate"] * audio["channels"] * SAMPLE_WIDTH)

        self._lock = threading.Lock()
        self.state = RecordingState.IDLE
        self.started_at = None
        self._session = 0
        self._stream = None
        self._chunks: list[bytes] = []
        self._buffered = 0
        self._overflow_warned = False

    @property
    def is_recording(self) -> bool:
        return self.state == RecordingState.RECORDING

    @property
    def buffered_bytes(self) -> int:
        with self._lock:
            return self._buffered

    # ---- transitions ----

    def start(self) -> bool:
        """Open a capture session. Returns False if one is already active."""
        with self._lock:
            if self.state != RecordingState.IDLE:
                return False
            self._session += 1
            session = self._session
            self._chunks = []
            self._buffered = 0
            self._overflow_warned = False
            self.state = RecordingState.RECORDING
            self.started_at = self._clock()

        try:
            stream = self.source.open(
                on_data=lambda chunk: self._on_data(session, chunk),
                on_error=lambda exc: self._on_capture_error(session, exc),
            )
        except Exception as exc:
            self._on_capture_error(session, exc)
            self._notify("dub", "Failed to start recording. Check microphone permissions.")
            return False

        with self._lock:
            current = self.state == RecordingState.RECORDING and self._session == session
            if current:
                self._stream = stream
        if not current:
            # the session ended while the stream was opening
            self._close_stream(stream)
            return False

        self.log.info("Recording started")
        self._send(EVENT_STARTED)
        self._notify("dub", "Recording started")
        return True

    def stop(self):
        """Close the session and persist its audio. Returns the file path or None."""
        with self._lock:
            if self.state != RecordingState.RECORDING:
                return None
            self.state = RecordingState.STOPPING
            stream, self._stream = self._stream, None
            chunks, self._chunks = self._chunks, []
            self._buffered = 0
            started_at = self.started_at

        path = None
        try:
            self._close_stream(stream)
            audio = b"".join(chunks)
            path = self._write_audio(audio)
            self.log.info(
                "Recording stopped",
                {
                    "audio_path": path,
                    "bytes": len(audio),
                    "duration": round(self._clock() - started_at, 2),
                },
            )
        except Exception as exc:
            self.log.error("Failed to stop recording", {"error": str(exc)}, exc_info=True)
            path = None
        finally:
            with self._lock:
                self.state = RecordingState.IDLE
                self.started_at = None

        if path is None:
            self._send(EVENT_ERROR, "Failed to save recording")
            return None
        self._send(EVENT_STOPPED, path)
        return path

    def toggle(self):
        """Start when idle, stop when recording."""
        if self.is_recording:
            return self.stop()
        return self.start()

    # ---- capture callbacks ----

    def _on_data(self, session, chunk):
        warn = False
        with self._lock:
            if self.state != RecordingState.RECORDING or session != self._session:
                return
            if self.max_buffer_bytes and self._buffered + len(chunk) > self.max_buffer_bytes:
                warn = not self._overflow_warned
                self._overflow_warned = True
            else:
                self._chunks.append(bytes(chunk))
                self._buffered += len(chunk)
        if warn:
            self.log.warn(
                "Recording buffer limit reached, discarding further audio",
                {"max_bytes": self.max_buffer_bytes},
            )

    def _on_capture_error(self, session, exc):
        with self._lock:
            if self.state != RecordingState.RECORDING or session != self._session:
                return
            self.state = RecordingState.ERROR
            stream, self._stream = self._stream, None
            self._chunks = []
            self._buffered = 0

        try:
            self._close_stream(stream)
            self.log.error("Recording error", {"error": str(exc)})
            self._send(EVENT_ERROR, str(exc))
        finally:
            with self._lock:
                self.state = RecordingState.IDLE
                self.started_at = None

    # ---- helpers ----

    def _close_stream(self, stream):
        if stream is None:
            return
        try:
            stream.close()
        except Exception as exc:
            self.log.warn(f"Failed to close capture stream: {exc}")

    def _write_audio(self, audio: bytes) -> str:
        stamp = int(self._clock() * 1000)
        with tempfile.NamedTemporaryFile(
            prefix=f"audio_{stamp}_", suffix=".wav", dir=self.temp_dir, delete=False
        ) as f:
            try:
                f.write(audio)
            except Exception:
                f.close()
                os.unlink(f.name)
                raise
            return f.name

    def delete_audio_file(self, path) -> dict:
        """Remove a recording handed out by ``stop()``. A missing file counts as success."""
        try:
            Path(path).unlink(missing_ok=True)
            return {"success": True}
        except OSError as exc:
            self.log.error("Failed to delete audio file", {"path": str(path), "error": str(exc)})
            return {"success": False, "error": str(exc)}

    def _send(self, event, *args):
        if self.shell is None:
            return
        try:
            self.shell.send(event, *args)
        except Exception as exc:
            self.log.warn(f"Failed to deliver {event}: {exc}")

    def _notify(self, title, body):
        if self.shell is None:
            return
        try:
            self.shell.show_notification(title, body)
        except Exception as exc:
            self.log.debug(f"Notification not shown: {exc}")
