import hmac
from typing import Optional

import structlog

from .errors import UnauthorizedError


logger = structlog.get_logger(__name__)


class AdminGate:
    """Shared-secret check for privileged operations. No secret configured means deny."""

    def __init__(self, secret: Optional[str]):
        self._secret = secret or None

    def authorize(self, supplied_key: Optional[str]) -> bool:
        if self._secret is None or not supplied_key:
            return False
        return hmac.compare_digest(supplied_key.encode(), self._secret.encode())

    def require(self, supplied_key: Optional[str]) -> None:
        if not self.authorize(supplied_key):
            logger.warning("admin_denied", key_supplied=bool(supplied_key))
            raise UnauthorizedError("Admin key missing or invalid")
