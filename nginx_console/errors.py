"""Error taxonomy for the console.

Every error carries the HTTP status the web layer answers with, so route
handlers can let them propagate to a single error handler.
"""


class ConsoleError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message}


class AuthenticationFailedError(ConsoleError):
    status_code = 401

    def __init__(self, message: str = "Invalid sudo password"):
        super().__init__(message)


class NoCredentialCachedError(ConsoleError):
    status_code = 401

    def __init__(self, message: str = "No sudo password stored, log in first"):
        super().__init__(message)


class UnsupportedPlatformError(ConsoleError):
    status_code = 501

    def __init__(self, platform: str):
        super().__init__(f"Unsupported OS: {platform}")
        self.platform = platform


class InvalidCategoryError(ConsoleError):
    status_code = 400

    def __init__(self, category: str, allowed):
        super().__init__(
            f"Invalid log type {category!r}, expected one of: {', '.join(sorted(allowed))}"
        )
        self.category = category


class InvalidActionError(ConsoleError):
    status_code = 400

    def __init__(self, action: str, allowed):
        super().__init__(
            f"Invalid action {action!r}, expected one of: {', '.join(allowed)}"
        )
        self.action = action


class InvalidQueryError(ConsoleError):
    status_code = 400


class ConfigNotFoundError(ConsoleError):
    status_code = 404

    def __init__(self, checked: list[str]):
        super().__init__(
            f"Could not find nginx.conf in any of these locations: {checked}"
        )
        self.checked = list(checked)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["checked"] = self.checked
        return d


class LogPathNotFoundError(ConsoleError):
    status_code = 404

    def __init__(self, category: str, checked: list[str]):
        super().__init__(
            f"Could not find {category} log file. Checked: {', '.join(checked)}"
        )
        self.category = category
        self.checked = list(checked)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["checked"] = self.checked
        return d


class SpecialDestinationError(ConsoleError):
    """Log output goes somewhere other than a plain file."""

    status_code = 409

    def __init__(self, category: str, destination, message: str):
        super().__init__(message)
        self.category = category
        self.destination = destination

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["destination"] = self.destination.kind
        return d


class CyclicIncludeError(ConsoleError):
    def __init__(self, chain: list[str]):
        super().__init__("Cyclic include detected: " + " -> ".join(chain))
        self.chain = list(chain)


class CommandFailedError(ConsoleError):
    """An external tool exited non-zero; ``detail`` is its stderr verbatim."""

    def __init__(self, message: str, command=None, detail: str = ""):
        super().__init__(message)
        self.command = list(command) if command else []
        self.detail = detail


class CommandNotFoundError(CommandFailedError):
    def __init__(self, command):
        super().__init__(f"Failed to execute {command[0]}: command not found", command)


class CommandTimeoutError(CommandFailedError):
    status_code = 504

    def __init__(self, command, timeout: float):
        super().__init__(
            f"{command[0]} did not finish within {timeout:g}s and was killed", command
        )
        self.timeout = timeout


class LogIOError(ConsoleError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to read {path}: {reason}")
        self.path = path
