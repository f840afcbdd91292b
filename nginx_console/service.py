"""Lifecycle actions and read-only probes for the nginx service."""

import logging
import re

from nginx_console.errors import (
    CommandFailedError,
    CommandNotFoundError,
    CommandTimeoutError,
    InvalidActionError,
)
from nginx_console.platforms import LIFECYCLE_ACTIONS
from nginx_console.runner import DEFAULT_TIMEOUT, run_command

logger = logging.getLogger(__name__)

_PAST_TENSE = {"start": "started", "stop": "stopped", "restart": "restarted"}
_CONF_PATH_RE = re.compile(r"(/[^ :]+\.conf)")


class ServiceController:
    def __init__(self, platform, executor, runner=run_command, service_name: str = "nginx",
                 nginx_binary: str = "nginx", default_config_path: str = "/etc/nginx/nginx.conf",
                 timeout: float = DEFAULT_TIMEOUT):
        self._platform = platform
        self._executor = executor
        self._runner = runner
        self._service = service_name
        self._binary = nginx_binary
        self._default_config_path = default_config_path
        self._timeout = timeout

    @property
    def label(self) -> str:
        return self._service.capitalize()

    def perform(self, action: str, key: str | None = None) -> str:
        """Run start/stop/restart with elevation; returns a success message."""
        if action not in LIFECYCLE_ACTIONS:
            raise InvalidActionError(action, LIFECYCLE_ACTIONS)
        argv = self._platform.lifecycle_command(action, self._service)
        try:
            self._executor.run_privileged(argv, key)
        except (CommandNotFoundError, CommandTimeoutError):
            raise
        except CommandFailedError as e:
            logger.error("Failed to %s %s: %s", action, self._service, e.detail.strip())
            raise CommandFailedError(
                f"Failed to {action} {self.label}: {e.detail}", argv, e.detail
            ) from e
        logger.info("%s %s", self.label, _PAST_TENSE[action])
        return f"{self.label} {_PAST_TENSE[action]} successfully"

    def status(self) -> dict:
        argv = self._platform.status_command(self._service)
        result = self._runner(argv, None, self._timeout)
        raw = result.stdout.strip()
        if not result.ok:
            return {"status": "inactive", "raw_output": raw, "error": result.stderr}
        active = self._platform.is_active(raw, self._service)
        return {"status": "active" if active else "inactive", "raw_output": raw}

    def version(self) -> str:
        """Return ``nginx -V`` output (nginx prints it on stderr)."""
        result = self._runner([self._binary, "-V"], None, self._timeout)
        return result.stderr or result.stdout

    def config_path(self) -> dict:
        try:
            result = self._runner([self._binary, "-t"], None, self._timeout)
        except CommandNotFoundError as e:
            logger.warning("%s", e.message)
            return {"path": self._default_config_path, "found": False,
                    "message": "Using default path"}
        match = _CONF_PATH_RE.search(result.stderr + "\n" + result.stdout)
        if match is None:
            return {"path": self._default_config_path, "found": False,
                    "message": "Using default path"}
        return {"path": match.group(1), "found": True}
