import hmac
import logging

from .errors import AuthMismatchError

logger = logging.getLogger(__name__)


def verify_password(password: str, secret: str) -> bool:
    return hmac.compare_digest((password or "").encode("utf-8"), (secret or "").encode("utf-8"))


def check_password(password: str, secret: str) -> None:
    """Raise AuthMismatchError unless password equals the configured secret."""
    if not secret or not verify_password(password, secret):
        logger.warning("Intento de login con contraseña incorrecta")
        raise AuthMismatchError("Contraseña incorrecta")
