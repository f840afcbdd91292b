"""Service-unit log queries for journalctl and the macOS unified log.

Builders are pure: the same LogQuery always yields the same argv.
"""

import logging
from dataclasses import dataclass

from nginx_console.errors import CommandFailedError, InvalidQueryError
from nginx_console.runner import DEFAULT_TIMEOUT, run_command

logger = logging.getLogger(__name__)

_FIELD_ALIASES = {
    "service_name": ("service_name", "serviceName"),
    "no_pager": ("no_pager", "noPager"),
    "num_lines": ("num_lines", "numLines"),
    "since": ("since",),
    "until": ("until",),
    "reverse": ("reverse",),
}


def _normalize_time(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    return value.replace("T", " ")


def _as_bool(name: str, value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no", ""):
        return False
    raise InvalidQueryError(f"{name} must be a boolean, got {value!r}")


def _as_int(name: str, value) -> int:
    # bool is an int subclass; 1.5 must not truncate silently
    if isinstance(value, bool):
        raise InvalidQueryError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidQueryError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class LogQuery:
    service_name: str
    no_pager: bool = False
    num_lines: int | None = None
    since: str | None = None
    until: str | None = None
    reverse: bool = False

    def __post_init__(self):
        if not self.service_name or not str(self.service_name).strip():
            raise InvalidQueryError("service_name is required")
        if self.num_lines is not None and self.num_lines < 0:
            raise InvalidQueryError("num_lines must be a non-negative integer")
        object.__setattr__(self, "since", _normalize_time(self.since))
        object.__setattr__(self, "until", _normalize_time(self.until))

    @classmethod
    def from_dict(cls, d: dict) -> "LogQuery":
        """Build from a request body using either snake_case or camelCase keys."""
        if not isinstance(d, dict):
            raise InvalidQueryError("Request body must be a JSON object")
        values = {}
        for name, aliases in _FIELD_ALIASES.items():
            for alias in aliases:
                if alias in d and d[alias] is not None:
                    values[name] = d[alias]
                    break

        num_lines = values.get("num_lines")
        if num_lines is not None:
            num_lines = _as_int("num_lines", num_lines)

        return cls(
            service_name=str(values.get("service_name", "")).strip(),
            no_pager=_as_bool("no_pager", values.get("no_pager", False)),
            num_lines=num_lines,
            since=values.get("since"),
            until=values.get("until"),
            reverse=_as_bool("reverse", values.get("reverse", False)),
        )


class JournalQueryBuilder:
    tool = "journalctl"

    def build(self, q: LogQuery) -> list[str]:
        argv = ["journalctl", "-u", q.service_name]
        if q.no_pager:
            argv.append("--no-pager")
        if q.num_lines is not None:
            argv += ["-n", str(q.num_lines)]
        if q.since:
            argv += ["--since", q.since]
        if q.until:
            argv += ["--until", q.until]
        if q.reverse:
            argv.append("--reverse")
        return argv


def _strip_unit_suffix(name: str) -> str:
    for suffix in (".service", ".socket"):
        while name.endswith(suffix):
            name = name[: -len(suffix)]
    return name


def _pad_date(value: str) -> str:
    """``log show`` wants a full timestamp; date-only values start at midnight."""
    if len(value) == len("YYYY-MM-DD"):
        return f"{value} 00:00:00"
    return value


class UnifiedLogQueryBuilder:
    tool = "log"

    def build(self, q: LogQuery) -> list[str]:
        name = _strip_unit_suffix(q.service_name)
        argv = ["log", "show", "--predicate", f"process == '{name}'"]
        # No line-count concept here; approximate with a window of N seconds.
        if q.num_lines is not None:
            argv += ["--last", f"{q.num_lines}s"]
        if q.since:
            argv += ["--start", _pad_date(q.since)]
        if q.until:
            argv += ["--end", _pad_date(q.until)]
        if q.reverse:
            argv.append("--reverse")
        return argv


class LogQueryService:
    def __init__(self, builder, runner=run_command, timeout: float = DEFAULT_TIMEOUT):
        self._builder = builder
        self._runner = runner
        self._timeout = timeout

    def fetch(self, q: LogQuery) -> str:
        argv = self._builder.build(q)
        logger.info("Querying %s logs via %s", q.service_name, self._builder.tool)
        result = self._runner(argv, None, self._timeout)
        if not result.ok:
            detail = result.stderr
            raise CommandFailedError(
                f"{self._builder.tool} error: {detail.strip()}", argv, detail
            )
        return result.stdout
