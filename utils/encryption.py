"""
Application-layer encryption for OAuth credentials stored on connections
and for the short-lived connection_data handed to the setup wizard.
"""
import json
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import CREDENTIALS_ENCRYPTION_KEY
from utils.logger import get_logger

logger = get_logger(__name__)

_fernet: Optional[Fernet] = None


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        key = CREDENTIALS_ENCRYPTION_KEY
        if not key:
            # Credentials written with this key are unreadable after a restart
            logger.warning("[Encryption] CREDENTIALS_ENCRYPTION_KEY not set, using an ephemeral key")
            key = Fernet.generate_key().decode()
        _fernet = Fernet(key.encode() if isinstance(key, str) else key)
    return _fernet


def encrypt_payload(payload: Dict[str, Any]) -> str:
    """Encrypt a JSON-serialisable dict into an opaque URL-safe string."""
    return _get_fernet().encrypt(json.dumps(payload, default=str).encode()).decode()


def decrypt_payload(token: str, ttl: Optional[int] = None) -> Dict[str, Any]:
    """
    Decrypt a string produced by encrypt_payload.

    Args:
        token: Encrypted string
        ttl: Optional maximum age in seconds

    Raises:
        ValueError: If the token is invalid, expired or from another key
    """
    try:
        decoded = _get_fernet().decrypt(token.encode(), ttl=ttl)
    except InvalidToken:
        raise ValueError("Encrypted payload is invalid or expired")
    return json.loads(decoded)


def encrypt_credentials(access_token: str, refresh_token: Optional[str]) -> str:
    """Encrypt an access/refresh token pair into a single opaque string."""
    return encrypt_payload({"access_token": access_token, "refresh_token": refresh_token})


def decrypt_credentials(encrypted: str) -> Dict[str, Optional[str]]:
    """
    Decrypt a credential blob produced by encrypt_credentials.

    Raises:
        ValueError: If the blob was not produced with the configured key
    """
    try:
        data = decrypt_payload(encrypted)
    except ValueError:
        raise ValueError("Stored credentials could not be decrypted")
    return {
        "access_token": data.get("access_token"),
        "refresh_token": data.get("refresh_token"),
    }
