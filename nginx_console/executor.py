"""Runs commands with elevated rights using the platform's elevation strategy."""

import logging

from nginx_console.credentials import Credential, CredentialCache
from nginx_console.errors import CommandFailedError, NoCredentialCachedError
from nginx_console.runner import DEFAULT_TIMEOUT, CommandResult, run_command

logger = logging.getLogger(__name__)


class PrivilegedExecutor:
    def __init__(self, elevation, cache: CredentialCache, runner=run_command,
                 timeout: float = DEFAULT_TIMEOUT):
        self._elevation = elevation
        self._cache = cache
        self._runner = runner
        self._timeout = timeout

    @property
    def requires_credential(self) -> bool:
        return self._elevation.requires_credential

    def run_privileged(self, argv, key: str | None = None) -> CommandResult:
        """Run *argv* elevated, using the credential cached under *key* if needed.

        Raises NoCredentialCachedError when a password is required but none is
        cached, and CommandFailedError (stderr verbatim in ``detail``) on a
        non-zero exit.
        """
        command = self._elevation.command(argv)
        stdin = None
        if self._elevation.requires_credential:
            credential = self._cache.load(key) if key else None
            if credential is None:
                raise NoCredentialCachedError()
            stdin = credential.reveal() + "\n"

        logger.info("Running privileged: %s", " ".join(argv))
        result = self._runner(command, stdin, self._timeout)
        if not result.ok:
            raise CommandFailedError(result.stderr, argv, result.stderr)
        return result

    def validate_credential(self, credential: Credential) -> bool:
        """Probe sudo with *credential*; True when it is accepted."""
        command = self._elevation.probe_command()
        result = self._runner(command, credential.reveal() + "\n", self._timeout)
        if result.ok:
            logger.info("Credential validated")
        else:
            logger.warning("Credential rejected by sudo")
        return result.ok
