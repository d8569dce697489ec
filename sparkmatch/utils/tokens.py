import uuid

from cryptography.fernet import Fernet, InvalidToken

from sparkmatch.config import get_settings
from sparkmatch.errors import AuthenticationError


def get_fernet() -> Fernet:
    settings = get_settings()
    key = settings.SECRET_KEY
    return Fernet(key.encode() if isinstance(key, str) else key)


def issue_token(user_id: uuid.UUID) -> str:
    """Encrypt the user id into an opaque, timestamped bearer token."""
    return get_fernet().encrypt(str(user_id).encode("utf-8")).decode("ascii")


def read_token(token: str) -> uuid.UUID:
    """Return the user id carried by ``token`` or raise ``AuthenticationError``.

    Fernet embeds the issue time, so expiry is enforced with ``ttl`` rather
    than a stored expiry claim.
    """
    settings = get_settings()
    try:
        raw = get_fernet().decrypt(token.encode("ascii"), ttl=settings.TOKEN_TTL_SECONDS)
        return uuid.UUID(raw.decode("utf-8"))
    except (InvalidToken, ValueError, UnicodeError):
        raise AuthenticationError("Invalid or expired token") from None
