"""Login boundary: validates the sudo password and marks the session authenticated."""

import functools
import logging
import secrets

from flask import current_app, jsonify, session

from nginx_console.credentials import Credential, CredentialCache
from nginx_console.errors import AuthenticationFailedError

logger = logging.getLogger(__name__)

LOGGED_IN = "logged_in"
SESSION_ID = "sid"


class SessionGate:
    def __init__(self, executor, cache: CredentialCache):
        self._executor = executor
        self._cache = cache

    def authenticate(self, sess, password: str):
        """Validate *password*; on success cache it and mark *sess* logged in."""
        if not password:
            raise AuthenticationFailedError("Password is required")
        credential = Credential(password)
        if not self._executor.validate_credential(credential):
            raise AuthenticationFailedError()

        sid = secrets.token_urlsafe(16)
        old = sess.get(SESSION_ID)
        if old:
            self._cache.invalidate(old)
        if not self._cache.store(sid, credential):
            logger.warning("Password validated but could not be cached")
        sess[SESSION_ID] = sid
        sess[LOGGED_IN] = True
        logger.info("Operator logged in")

    def credential_key(self, sess) -> str | None:
        return sess.get(SESSION_ID)

    def is_authenticated(self, sess) -> bool:
        if not sess.get(LOGGED_IN):
            return False
        if not self._executor.requires_credential:
            return True
        # an expired credential ends the session too
        key = sess.get(SESSION_ID)
        return key is not None and self._cache.load(key) is not None

    def logout(self, sess):
        key = sess.get(SESSION_ID)
        if key:
            self._cache.invalidate(key)
        sess.clear()
        logger.info("Operator logged out")


def login_required(fn):
    """Reject the request with 401 unless the Flask session is authenticated."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        gate = current_app.config["components"]["gate"]
        if not gate.is_authenticated(session):
            return jsonify({"success": False, "error": "Authentication required"}), 401
        return fn(*args, **kwargs)

    return wrapper
