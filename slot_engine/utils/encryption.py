import base64
import functools
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

DEFAULT_SALT = b'slot_engine_bonus_token_salt_v1'


@functools.lru_cache(maxsize=8)
def get_encryption_key(secret: str, salt: bytes = DEFAULT_SALT) -> bytes:
    """
    Derive a Fernet key from the configured token secret.

    Derivation is deterministic so every process sharing the secret can open
    tokens sealed by any other.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode()))


def seal_payload(payload: bytes, secret: str, salt: bytes = DEFAULT_SALT) -> str:
    """
    Encrypt and authenticate a payload.

    Returns:
        str: URL-safe token text.
    """
    f = Fernet(get_encryption_key(secret, salt))
    return f.encrypt(payload).decode()


def open_payload(token: str, secret: str, salt: bytes = DEFAULT_SALT) -> bytes:
    """
    Decrypt a token produced by ``seal_payload``.

    Raises:
        InvalidToken: If the token is malformed, truncated, or was sealed with another key.
    """
    if not isinstance(token, str) or not token:
        raise InvalidToken()
    f = Fernet(get_encryption_key(secret, salt))
    try:
        return f.decrypt(token.encode())
    except InvalidToken:
        logger.warning("Rejected bonus token that failed authentication")
        raise
