"""Per-platform strategies.

Each platform bundles how privileged commands are elevated, how the service is
started/stopped/queried, and which log-query grammar applies. The strategy is
picked once at startup so the rest of the code never branches on the OS.
"""

import sys

from nginx_console.errors import UnsupportedPlatformError
from nginx_console.query import JournalQueryBuilder, UnifiedLogQueryBuilder

LIFECYCLE_ACTIONS = ("start", "stop", "restart")

SUDO_PROBE = ("sudo", "-S", "-k", "-p", "", "true")


class SudoElevation:
    """Pipes the cached password to ``sudo -S``."""

    requires_credential = True

    def command(self, argv) -> list[str]:
        return ["sudo", "-S", "-p", "", *argv]

    def probe_command(self) -> list[str]:
        return list(SUDO_PROBE)


class NativePromptElevation:
    """The OS handles privileges itself (e.g. brew services); no password needed."""

    requires_credential = False

    def command(self, argv) -> list[str]:
        return list(argv)

    def probe_command(self) -> list[str]:
        return list(SUDO_PROBE)


class NoElevation:
    requires_credential = False

    def __init__(self, platform: str):
        self._platform = platform

    def command(self, argv) -> list[str]:
        raise UnsupportedPlatformError(self._platform)

    def probe_command(self) -> list[str]:
        raise UnsupportedPlatformError(self._platform)


class Platform:
    name = "unknown"

    def __init__(self):
        self.elevation = NoElevation(self.name)
        self.query_builder = None

    def lifecycle_command(self, action: str, service: str) -> list[str]:
        raise UnsupportedPlatformError(self.name)

    def status_command(self, service: str) -> list[str]:
        raise UnsupportedPlatformError(self.name)

    def is_active(self, output: str, service: str) -> bool:
        return False

    def log_query_builder(self):
        if self.query_builder is None:
            raise UnsupportedPlatformError(self.name)
        return self.query_builder


class LinuxPlatform(Platform):
    name = "linux"

    def __init__(self):
        self.elevation = SudoElevation()
        self.query_builder = JournalQueryBuilder()

    def lifecycle_command(self, action, service):
        return ["systemctl", action, service]

    def status_command(self, service):
        return ["systemctl", "is-active", service]

    def is_active(self, output, service):
        return output.strip() == "active"


class MacOSPlatform(Platform):
    name = "macos"

    def __init__(self):
        self.elevation = NativePromptElevation()
        self.query_builder = UnifiedLogQueryBuilder()

    def lifecycle_command(self, action, service):
        return ["brew", "services", action, service]

    def status_command(self, service):
        return ["brew", "services", "list"]

    def is_active(self, output, service):
        for line in output.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0] == service:
                return parts[1] == "started"
        return False


class UnsupportedPlatform(Platform):
    def __init__(self, name: str):
        self.name = name
        super().__init__()


_PLATFORMS = {
    "linux": LinuxPlatform,
    "darwin": MacOSPlatform,
    "macos": MacOSPlatform,
}


def select_platform(name: str = "auto") -> Platform:
    """Return the strategy for *name*, or for the running OS when ``auto``."""
    if not name or name == "auto":
        name = sys.platform
    if name.startswith("linux"):
        name = "linux"
    cls = _PLATFORMS.get(name.lower())
    if cls is None:
        return UnsupportedPlatform(name)
    return cls()
