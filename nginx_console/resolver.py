"""Finds where nginx actually writes a log category.

The answer lives in ``access_log`` / ``error_log`` directives somewhere in the
main configuration file or the files it pulls in through (possibly globbed)
``include`` directives. A directive can also point at a stream, syslog, or
``off`` instead of a file; those come back as non-file destinations.

Resolution order:

1. compiled-in defaults reported by ``nginx -V`` that route a category to a
   standard stream
2. the first matching directive in the main file
3. the included files, in declaration order, recursively
4. a fixed default path per category, if it exists
"""

import glob
import logging
import os
from dataclasses import dataclass, field

from nginx_console.config import DEFAULT_CONFIG_PATHS, DEFAULT_LOG_PATHS
from nginx_console.errors import (
    ConfigNotFoundError,
    ConsoleError,
    CyclicIncludeError,
    InvalidCategoryError,
    LogIOError,
    LogPathNotFoundError,
    SpecialDestinationError,
)

logger = logging.getLogger(__name__)

CATEGORY_DIRECTIVES = {
    "access": "access_log",
    "error": "error_log",
}

# configure options that can route a category to a stream at build time
BUILD_OPTIONS = {
    "access": ("access-log-path", "http-log-path"),
    "error": ("error-log-path",),
}

STREAM_ALIASES = {
    "stderr": "stderr",
    "/dev/stderr": "stderr",
    "stdout": "stdout",
    "/dev/stdout": "stdout",
}


@dataclass(frozen=True)
class FileDestination:
    path: str
    kind = "file"

    def guidance(self, category: str, service: str = "nginx") -> str:
        return f"Nginx {category} logs are written to {self.path}."


@dataclass(frozen=True)
class StreamDestination:
    stream: str  # "stderr" or "stdout"
    kind = "stream"

    def guidance(self, category: str, service: str = "nginx") -> str:
        return (
            f"Nginx {category} log is configured to log to {self.stream}. "
            f"Logs are not available as files when using '{self.stream}'. "
            f"You can view nginx logs using 'journalctl -u {service}' "
            "or by checking your process manager logs."
        )


@dataclass(frozen=True)
class SyslogDestination:
    target: str
    kind = "syslog"

    def guidance(self, category: str, service: str = "nginx") -> str:
        return (
            f"Nginx {category} log is configured to log to syslog ({self.target}). "
            f"You can view nginx logs using 'journalctl -u {service}' "
            "or your system's syslog viewer."
        )


@dataclass(frozen=True)
class DisabledDestination:
    kind = "disabled"

    def guidance(self, category: str, service: str = "nginx") -> str:
        return f"Nginx {category} logging is disabled (set to 'off')."


LogDestination = FileDestination | StreamDestination | SyslogDestination | DisabledDestination


def classify_destination(value: str, config_dir: str) -> LogDestination:
    """Turn a directive value into a destination; relative files join *config_dir*."""
    if value in STREAM_ALIASES:
        return StreamDestination(STREAM_ALIASES[value])
    if value == "off":
        return DisabledDestination()
    if value == "syslog" or value.startswith("syslog:"):
        return SyslogDestination(value)
    if not os.path.isabs(value):
        value = os.path.join(config_dir, value)
    return FileDestination(os.path.normpath(value))


@dataclass
class ConfigNode:
    path: str
    directives: list[str] = field(default_factory=list)
    includes: list[str] = field(default_factory=list)

    @property
    def directory(self) -> str:
        return os.path.dirname(os.path.abspath(self.path))

    def values(self, directive: str):
        """Yield the first argument of every *directive* line, in file order."""
        for line in self.directives:
            parts = line.split()
            if len(parts) >= 2 and parts[0] == directive:
                yield _directive_value(parts[1])


def _directive_value(token: str) -> str:
    return token.rstrip(";").strip("\"'")


def parse_config_file(path: str) -> ConfigNode:
    """Read one config file. Raises OSError if it cannot be read."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        content = f.read()

    node = ConfigNode(path=path)
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        node.directives.append(line)
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "include":
            node.includes.append(_directive_value(parts[1]))
    return node


def _build_options(build_info: str) -> dict[str, str]:
    options = {}
    for token in build_info.split():
        if token.startswith("--") and "=" in token:
            key, value = token[2:].split("=", 1)
            options[key] = value
    return options


class ConfigLogResolver:
    def __init__(self, config_paths=DEFAULT_CONFIG_PATHS, default_log_paths=None,
                 build_info=None, service_name: str = "nginx"):
        self._config_paths = tuple(config_paths)
        self._default_paths = dict(default_log_paths or DEFAULT_LOG_PATHS)
        self._build_info = build_info
        self._service = service_name

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(CATEGORY_DIRECTIVES)

    def directive_for(self, category: str) -> str:
        try:
            return CATEGORY_DIRECTIVES[category]
        except KeyError:
            raise InvalidCategoryError(category, CATEGORY_DIRECTIVES) from None

    def find_config_file(self) -> str:
        for path in self._config_paths:
            if os.path.isfile(path):
                return path
        raise ConfigNotFoundError(list(self._config_paths))

    def resolve_log_path(self, category: str) -> LogDestination:
        directive = self.directive_for(category)

        compiled = self._compiled_destination(category)
        if compiled is not None:
            logger.info("nginx was built with %s log going to %s", category, compiled.kind)
            return compiled

        config_path = self.find_config_file()
        searched: list[str] = []
        try:
            found = self._search(config_path, directive, [], set(), searched)
        except OSError as e:
            raise LogIOError(config_path, str(e)) from e
        if found is not None:
            logger.debug("Resolved %s log to %s", category, found)
            return found

        default = self._default_paths.get(category)
        if default and os.path.exists(default):
            logger.info("No %s directive found, using default %s", directive, default)
            return FileDestination(default)
        raise LogPathNotFoundError(category, searched + ([default] if default else []))

    def resolve_log_file(self, category: str) -> str:
        """Like resolve_log_path, but only a plain file is an acceptable answer."""
        destination = self.resolve_log_path(category)
        if isinstance(destination, FileDestination):
            return destination.path
        raise SpecialDestinationError(
            category, destination, destination.guidance(category, self._service)
        )

    def _compiled_destination(self, category: str) -> LogDestination | None:
        if self._build_info is None:
            return None
        try:
            info = self._build_info()
        except (ConsoleError, OSError) as e:
            logger.debug("Skipping build-info check: %s", e)
            return None

        options = _build_options(info or "")
        for option in BUILD_OPTIONS[category]:
            value = options.get(option)
            if value in STREAM_ALIASES:
                return StreamDestination(STREAM_ALIASES[value])
        return None

    def _search(self, path: str, directive: str, chain: list[str],
                visited: set[str], searched: list[str]) -> LogDestination | None:
        real = os.path.realpath(path)
        if real in chain:
            raise CyclicIncludeError(chain + [real])
        if real in visited:
            return None
        visited.add(real)

        node = parse_config_file(path)
        searched.append(path)

        for value in node.values(directive):
            return classify_destination(value, node.directory)

        chain = chain + [real]
        for pattern in node.includes:
            for included in self._expand_include(pattern, node.directory):
                try:
                    found = self._search(included, directive, chain, visited, searched)
                except OSError as e:
                    logger.warning("Skipping unreadable include %s: %s", included, e)
                    continue
                if found is not None:
                    return found
        return None

    @staticmethod
    def _expand_include(pattern: str, config_dir: str) -> list[str]:
        full = pattern if os.path.isabs(pattern) else os.path.join(config_dir, pattern)
        if os.path.isfile(full):
            return [full]
        if any(c in pattern for c in ("*", "?", "[")):
            return [p for p in sorted(glob.glob(full)) if os.path.isfile(p)]
        return []
