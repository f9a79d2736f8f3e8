# auth.py

import hmac
import logging

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USER = "admin"
DEFAULT_ADMIN_PASS = "admin123"

DASHBOARD_URL = "/admin/dashboard"


class StaticCredentialAuth:
    """
    Single operator identity checked against configured credentials.

    Placeholder only: plaintext comparison, no hashing, no session or token.
    Handlers depend on `authenticate()` alone so this class can be replaced
    by a real credential/session backend.
    """

    def __init__(self, username=None, password=None):
        self.username = username or DEFAULT_ADMIN_USER
        self.password = password or DEFAULT_ADMIN_PASS

    def authenticate(self, username, password):
        if not isinstance(username, str) or not isinstance(password, str):
            return False
        user_ok = hmac.compare_digest(username.encode("utf-8"), self.username.encode("utf-8"))
        pass_ok = hmac.compare_digest(password.encode("utf-8"), self.password.encode("utf-8"))
        return user_ok and pass_ok

    def login(self, username, password):
        """Returns the redirect target on success, None otherwise."""
        if self.authenticate(username, password):
            logger.info("Admin login succeeded for %s", username)
            return DASHBOARD_URL
        logger.warning("Admin login failed for %r", username)
        return None
