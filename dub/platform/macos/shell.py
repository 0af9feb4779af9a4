"""macOS menu bar shell using rumps notifications and alerts."""

from __future__ import annotations

import logging
import threading

import rumps
from PyObjCTools import AppHelper

LOG = logging.getLogger("dub.shell")


class MacOSUiShell:
    """Forwards lifecycle events to a listener and talks to the user via rumps."""

    def __init__(self, listener=None):
        self.listener = listener

    def send(self, event, *args):
        LOG.debug(f"event {event} {args}")
        if self.listener is not None:
            self.listener(event, *args)

    def show_notification(self, title, message):
        try:
            rumps.notification(title=title, subtitle="", message=message)
        except Exception as exc:
            LOG.debug(f"Notification unavailable: {exc}")

    def show_error_dialog(self, title, message):
        """Show a blocking alert, hopping to the AppKit main thread when needed."""
        if threading.current_thread() is threading.main_thread():
            self._alert(title, message)
        else:
            AppHelper.callAfter(self._alert, title, message)

    def _alert(self, title, message):
        rumps.alert(title=title, message=message, ok="OK")
