"""Platform adapter interfaces."""

from __future__ import annotations

from typing import Callable, Protocol


class UiShell(Protocol):
    """Presentation layer: lifecycle events, notifications, dialogs."""

    def send(self, event: str, *args) -> None:
        """Deliver a fire-and-forget lifecycle event such as ``recording-stopped``."""

    def show_notification(self, title: str, message: str) -> None:
        """Display a user notification. Best effort."""

    def show_error_dialog(self, title: str, message: str) -> None:
        """Show a blocking, dismissible error dialog."""


class CaptureStream(Protocol):
    """An open audio capture stream."""

    def close(self) -> None:
        """Stop capturing and release the device."""


class AudioSource(Protocol):
    """Audio input provider used by the recording controller."""

    def open(
        self,
        on_data: Callable[[bytes], None],
        on_error: Callable[[Exception], None],
    ) -> CaptureStream:
        """Start capturing. Raise on synchronous failure."""


class Updater(Protocol):
    """External update-distribution client."""

    def set_handlers(
        self,
        on_available: Callable[[object], None],
        on_downloaded: Callable[[object], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        """Register callbacks for update lifecycle events."""

    def check_for_updates(self) -> None:
        """Ask the update service whether a new version exists."""
