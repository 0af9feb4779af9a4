import os
import shutil
import tempfile
import unittest
from pathlib import Path

from dub.core.recording import CaptureError, RecordingController
from dub.core.state import EVENT_ERROR, EVENT_STARTED, EVENT_STOPPED, RecordingState


class StubLog:
    def __init__(self):
        self.entries = []

    def error(self, message, meta=None, exc_info=None):
        self.entries.append(("error", message))

    def warn(self, message, meta=None):
        self.entries.append(("warn", message))

    def info(self, message, meta=None):
        self.entries.append(("info", message))

    def debug(self, message, meta=None):
        self.entries.append(("debug", message))

    def messages(self, level):
        return [m for lvl, m in self.entries if lvl == level]


class FakeStream:
    def __init__(self, fail_close=False):
        self.closed = 0
        self.fail_close = fail_close

    def close(self):
        self.closed += 1
        if self.fail_close:
            raise OSError("device busy")


class FakeSource:
    """Capture source whose callbacks are driven by the test."""

    def __init__(self, fail_open=None, fail_close=False):
        self.fail_open = fail_open
        self.fail_close = fail_close
        self.opens = 0
        self.streams = []
        self.on_data = None
        self.on_error = None

    def open(self, on_data, on_error):
        self.opens += 1
        if self.fail_open:
            raise self.fail_open
        self.on_data = on_data
        self.on_error = on_error
        stream = FakeStream(self.fail_close)
        self.streams.append(stream)
        return stream


class FakeShell:
    def __init__(self, fail_send=False):
        self.events = []
        self.notifications = []
        self.fail_send = fail_send

    def send(self, event, *args):
        if self.fail_send:
            raise RuntimeError("window closed")
        self.events.append((event, *args))

    def show_notification(self, title, body):
        self.notifications.append((title, body))


class RecordingControllerTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.log = StubLog()
        self.source = FakeSource()
        self.shell = FakeShell()
        self.controller = self.make_controller(self.source)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_controller(self, source, config=None, shell=None):
        return RecordingController(
            source,
            self.log,
            shell=shell or self.shell,
            config=config,
            temp_dir=self.temp_dir,
        )

    def test_start_enters_recording(self):
        self.assertTrue(self.controller.start())
        self.assertEqual(self.controller.state, RecordingState.RECORDING)
        self.assertTrue(self.controller.is_recording)
        self.assertEqual(self.shell.events, [(EVENT_STARTED,)])
        self.assertIn(("dub", "Recording started"), self.shell.notifications)
        self.assertIn("Recording started", self.log.messages("info"))

    def test_second_start_is_noop(self):
        self.controller.start()
        self.assertFalse(self.controller.start())
        self.assertEqual(self.source.opens, 1)
        self.assertEqual(self.shell.events, [(EVENT_STARTED,)])

    def test_stop_while_idle_is_noop(self):
        self.assertIsNone(self.controller.stop())
        self.assertEqual(self.shell.events, [])
        self.assertEqual(self.controller.state, RecordingState.IDLE)

    def test_stop_writes_concatenated_chunks(self):
        self.controller.start()
        for size in (100, 200, 50):
            self.source.on_data(b"\x01" * size)
        self.assertEqual(self.controller.buffered_bytes, 350)

        path = self.controller.stop()

        self.assertEqual(os.path.getsize(path), 350)
        self.assertEqual(self.controller.buffered_bytes, 0)
        self.assertEqual(self.controller.state, RecordingState.IDLE)
        self.assertEqual(self.source.streams[0].closed, 1)
        self.assertEqual(self.shell.events[-1], (EVENT_STOPPED, path))

    def test_stop_immediately_after_start_writes_empty_file(self):
        self.controller.start()
        path = self.controller.stop()
        self.assertEqual(os.path.getsize(path), 0)
        self.assertEqual(self.source.streams[0].closed, 1)

    def test_recording_file_naming(self):
        self.controller.start()
        path = Path(self.controller.stop())
        self.assertEqual(path.parent, Path(self.temp_dir))
        self.assertTrue(path.name.startswith("audio_"))
        self.assertEqual(path.suffix, ".wav")

    def test_consecutive_sessions_use_distinct_files(self):
        self.controller.start()
        first = self.controller.stop()
        self.controller.start()
        second = self.controller.stop()
        self.assertNotEqual(first, second)

    def test_data_after_stop_is_ignored(self):
        self.controller.start()
        on_data = self.source.on_data
        self.controller.stop()
        on_data(b"late")
        self.assertEqual(self.controller.buffered_bytes, 0)

    def test_stale_session_data_is_ignored(self):
        self.controller.start()
        stale = self.source.on_data
        self.controller.stop()
        self.controller.start()
        stale(b"old session")
        self.source.on_data(b"new")
        self.assertEqual(self.controller.buffered_bytes, 3)

    def test_capture_error_handled_once(self):
        self.controller.start()
        self.source.on_data(b"partial")

        self.source.on_error(CaptureError("device unplugged"))
        self.source.on_error(CaptureError("device unplugged"))

        self.assertEqual(self.controller.state, RecordingState.IDLE)
        self.assertEqual(self.controller.buffered_bytes, 0)
        self.assertEqual(self.source.streams[0].closed, 1)
        errors = [e for e in self.shell.events if e[0] == EVENT_ERROR]
        self.assertEqual(errors, [(EVENT_ERROR, "device unplugged")])
        self.assertEqual(self.log.messages("error"), ["Recording error"])
        self.assertIsNone(self.controller.stop())

    def test_open_failure_returns_to_idle_and_notifies(self):
        source = FakeSource(fail_open=CaptureError("permission denied"))
        controller = self.make_controller(source)

        self.assertFalse(controller.start())

        self.assertEqual(controller.state, RecordingState.IDLE)
        self.assertEqual(self.shell.events, [(EVENT_ERROR, "permission denied")])
        self.assertIn(
            ("dub", "Failed to start recording. Check microphone permissions."),
            self.shell.notifications,
        )

    def test_error_during_open_closes_late_stream(self):
        class ErrorWhileOpening(FakeSource):
            def open(self, on_data, on_error):
                stream = super().open(on_data, on_error)
                on_error(CaptureError("stream died"))
                return stream

        source = ErrorWhileOpening()
        controller = self.make_controller(source)

        self.assertFalse(controller.start())
        self.assertEqual(controller.state, RecordingState.IDLE)
        self.assertEqual(source.streams[0].closed, 1)

    def test_buffer_cap_discards_overflow_and_warns_once(self):
        config = {"rate": 100, "channels": 1, "max_recording_seconds": 1}
        controller = self.make_controller(self.source, config=config)
        self.assertEqual(controller.max_buffer_bytes, 200)

        controller.start()
        self.source.on_data(b"a" * 150)
        self.source.on_data(b"b" * 100)
        self.source.on_data(b"c" * 100)
        self.source.on_data(b"d" * 50)

        self.assertEqual(controller.buffered_bytes, 200)
        self.assertEqual(
            self.log.messages("warn"),
            ["Recording buffer limit reached, discarding further audio"],
        )
        path = controller.stop()
        self.assertEqual(Path(path).read_bytes(), b"a" * 150 + b"d" * 50)

    def test_write_failure_still_returns_to_idle(self):
        controller = RecordingController(
            self.source,
            self.log,
            shell=self.shell,
            temp_dir=os.path.join(self.temp_dir, "missing", "dir"),
        )
        controller.start()
        self.source.on_data(b"data")

        self.assertIsNone(controller.stop())

        self.assertEqual(controller.state, RecordingState.IDLE)
        self.assertEqual(self.shell.events[-1], (EVENT_ERROR, "Failed to save recording"))
        self.assertEqual(self.log.messages("error"), ["Failed to stop recording"])
        self.assertTrue(controller.start())

    def test_stream_close_failure_does_not_block_stop(self):
        source = FakeSource(fail_close=True)
        controller = self.make_controller(source)
        controller.start()
        source.on_data(b"xyz")

        path = controller.stop()

        self.assertEqual(Path(path).read_bytes(), b"xyz")
        self.assertEqual(controller.state, RecordingState.IDLE)
        self.assertIn("Failed to close capture stream: device busy", self.log.messages("warn"))

    def test_shell_failure_does_not_break_transitions(self):
        controller = self.make_controller(self.source, shell=FakeShell(fail_send=True))
        self.assertTrue(controller.start())
        self.assertIsNotNone(controller.stop())
        self.assertEqual(controller.state, RecordingState.IDLE)

    def test_toggle(self):
        self.assertTrue(self.controller.toggle())
        self.assertTrue(self.controller.is_recording)
        path = self.controller.toggle()
        self.assertTrue(os.path.exists(path))
        self.assertFalse(self.controller.is_recording)


class DeleteAudioFileTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.log = StubLog()
        self.controller = RecordingController(FakeSource(), self.log, temp_dir=self.temp_dir)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_existing_file_removed(self):
        path = os.path.join(self.temp_dir, "audio_1.wav")
        Path(path).write_bytes(b"RIFF")
        self.assertEqual(self.controller.delete_audio_file(path), {"success": True})
        self.assertFalse(os.path.exists(path))

    def test_missing_file_is_success(self):
        path = os.path.join(self.temp_dir, "audio_2.wav")
        self.assertEqual(self.controller.delete_audio_file(path), {"success": True})

    def test_failure_reported(self):
        result = self.controller.delete_audio_file(self.temp_dir)
        self.assertFalse(result["success"])
        self.assertIn("error", result)
        self.assertEqual(self.log.messages("error"), ["Failed to delete audio file"])


if __name__ == "__main__":
    unittest.main()
