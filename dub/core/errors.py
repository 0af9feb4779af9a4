"""Process-wide fault boundary."""

from __future__ import annotations

import functools
import inspect
import sys
import threading
import traceback

SYNC_FAULT = "Uncaught Exception"
ASYNC_FAULT = "Unhandled Rejection"

CRITICAL_DIALOG_TITLE = "Application Error"
CRITICAL_DIALOG_MESSAGE = (
    "An unexpected error occurred. The application will continue running, "
    "but some features may not work properly.\n\n"
    "Error: {error}\n\n"
    "Please check the logs for more details."
)


class CrashFault(Exception):
    """An uncaught fault that arrived without an exception object."""


def format_stack(error: BaseException) -> str:
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class ErrorReporter:
    """Routes uncaught faults to the log, the health counters and the user."""

    def __init__(self, log, health, shell=None, development: bool = True):
        self.log = log
        self.health = health
        self.shell = shell
        self.development = development
        self._installed = False
        self._loop = None
        self._previous_excepthook = None
        self._previous_thread_excepthook = None
        self._previous_loop_handler = None

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self, loop=None):
        """Register the synchronous hooks and, if given, the loop's async handler."""
        if self._installed:
            return
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._on_uncaught_exception
        self._previous_thread_excepthook = threading.excepthook
        threading.excepthook = self._on_thread_exception
        if loop is not None:
            self._loop = loop
            self._previous_loop_handler = loop.get_exception_handler()
            loop.set_exception_handler(self._on_async_fault)
        self._installed = True

    def uninstall(self):
        if not self._installed:
            return
        sys.excepthook = self._previous_excepthook
        threading.excepthook = self._previous_thread_excepthook
        if self._loop is not None:
            self._loop.set_exception_handler(self._previous_loop_handler)
            self._loop = None
        self._installed = False

    # ---- fault channels ----

    def _on_uncaught_exception(self, exc_type, exc, tb):
        if issubclass(exc_type, KeyboardInterrupt):
            self._previous_excepthook(exc_type, exc, tb)
            return
        if exc is None:
            exc = CrashFault(exc_type.__name__)
        self.handle_critical_error(SYNC_FAULT, exc)

    def _on_thread_exception(self, args):
        if args.exc_type is SystemExit:
            return
        error = args.exc_value
        if error is None:
            error = CrashFault(args.exc_type.__name__)
        self.handle_critical_error(SYNC_FAULT, error)

    def _on_async_fault(self, loop, context):
        error = context.get("exception")
        if error is None:
            error = CrashFault(context.get("message", "Unhandled asynchronous fault"))
        self.handle_critical_error(ASYNC_FAULT, error)

    # ---- reporting ----

    def handle_critical_error(self, kind: str, error: BaseException):
        """Log, count and surface an uncaught fault. The process keeps running."""
        self.log.error(
            f"{kind}: {error}",
            {"message": str(error), "stack": format_stack(error), "type": kind},
        )
        if self.development:
            print(f"{kind}:", file=sys.stderr)
            traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)

        self.health.record_crash()
        self._show_dialog(CRITICAL_DIALOG_TITLE, CRITICAL_DIALOG_MESSAGE.format(error=error))

    def handle_error(self, context: str, error: BaseException, show_dialog: bool = False) -> dict:
        """Report a fault the caller already caught and return a failure result."""
        self.log.error(
            f"Error in {context}: {error}",
            {"message": str(error), "stack": format_stack(error), "context": context},
        )
        self.health.record_error()
        if show_dialog:
            self._show_dialog("Error", f"An error occurred: {error}")
        return {"success": False, "error": str(error)}

    def wrap_async(self, fn, context: str = "AsyncFunction"):
        """Wrap *fn* so any exception becomes a ``handle_error`` result."""
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await fn(*args, **kwargs)
                except Exception as exc:
                    return self.handle_error(context, exc)

            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                return self.handle_error(context, exc)

        return wrapper

    def _show_dialog(self, title: str, message: str):
        if self.shell is None:
            return
        try:
            self.shell.show_error_dialog(title, message)
        except Exception as exc:
            self.log.warn(f"Failed to show error dialog: {exc}")
