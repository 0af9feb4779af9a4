"""Microphone capture source backed by PyAudio callback streams."""

from __future__ import annotations

import logging
import struct
import threading

import pyaudio

from dub.core.recording import SAMPLE_WIDTH, CaptureError

LOG = logging.getLogger("dub.audio")


def wav_stream_header(rate: int, channels: int, sample_width: int = SAMPLE_WIDTH) -> bytes:
    """RIFF header for a PCM stream of unknown length."""
    unknown = 0xFFFFFFFF
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        unknown,
        b"WAVE",
        b"fmt ",
        16,
        1,  # PCM
        channels,
        rate,
        rate * channels * sample_width,
        channels * sample_width,
        sample_width * 8,
        b"data",
        unknown,
    )


class _PyAudioStream:
    """Handle returned by ``PyAudioSource.open``."""

    def __init__(self, pa, stream):
        self._pa = pa
        self._stream = stream
        self.callback_thread = None
        self._closed = False

    def close(self):
        if self._closed:
            return
        self._closed = True
        if threading.get_ident() == self.callback_thread:
            # PortAudio cannot stop a stream from inside its own callback
            threading.Thread(target=self._teardown, daemon=True).start()
        else:
            self._teardown()

    def _teardown(self):
        try:
            if self._stream.is_active():
                self._stream.stop_stream()
            self._stream.close()
        except Exception as exc:
            LOG.warning(f"Failed to close audio stream: {exc}")
        finally:
            self._pa.terminate()


class PyAudioSource:
    """Opens the configured input device and streams 16-bit PCM chunks."""

    def __init__(self, config):
        self.config = config
        self.device_index = config.get("input_device", None)

    @staticmethod
    def list_input_devices() -> list[dict]:
        """Capture-capable devices as ``{index, name, channels}`` dicts."""
        pa = pyaudio.PyAudio()
        try:
            infos = [(i, pa.get_device_info_by_index(i)) for i in range(pa.get_device_count())]
        finally:
            pa.terminate()
        return [
            {"index": i, "name": info["name"], "channels": info["maxInputChannels"]}
            for i, info in infos
            if info["maxInputChannels"] > 0
        ]

    def set_device(self, device_index):
        """Capture from *device_index* (None for the system default) from the next session on."""
        self.device_index = device_index
        self.config["input_device"] = device_index
        LOG.info(f"Input device set to {device_index if device_index is not None else 'system default'}")

    def open(self, on_data, on_error):
        """Start capturing; chunks go to *on_data*, stream faults to *on_error*."""
        rate = self.config["rate"]
        channels = self.config["channels"]
        handle = None

        def callback(in_data, frame_count, time_info, status):
            handle.callback_thread = threading.get_ident()
            try:
                if in_data:
                    on_data(in_data)
            except Exception as exc:
                on_error(CaptureError(f"Audio callback failed: {exc}"))
                return (None, pyaudio.paAbort)
            return (None, pyaudio.paContinue)

        p = pyaudio.PyAudio()
        stream_kwargs = {
            "format": pyaudio.paInt16,
            "channels": channels,
            "rate": rate,
            "input": True,
            "frames_per_buffer": self.config["chunk"],
            "stream_callback": callback,
            "start": False,
        }
        if self.device_index is not None:
            stream_kwargs["input_device_index"] = self.device_index

        try:
            stream = p.open(**stream_kwargs)
            handle = _PyAudioStream(p, stream)
            on_data(wav_stream_header(rate, channels))
            stream.start_stream()
        except Exception as exc:
            if handle is not None:
                handle.close()
            else:
                p.terminate()
            raise CaptureError(f"Failed to open audio stream: {exc}") from exc
        return handle
