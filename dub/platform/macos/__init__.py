"""macOS platform adapter implementations."""

from dub.platform.macos.shell import MacOSUiShell

__all__ = ["MacOSUiShell"]
