import hashlib
import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import jwt
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from passlib.context import CryptContext

from publishdesk.core.config import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_IV_LENGTH = 16
TOKEN_KEY_HEX_LENGTH = 64
GCM_TAG_LENGTH = 16


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: UUID, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": expire,
        "type": "access",
        "jti": str(uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def get_token_identifier(token: str, claims: dict | None = None) -> str:
    payload = claims or decode_token(token)
    token_id = payload.get("jti")
    if isinstance(token_id, str) and token_id.strip():
        return token_id
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _get_token_key() -> bytes | None:
    key = settings.token_encryption_key
    if not key:
        logger.warning("token_encryption_key_missing tokens will be stored as plaintext")
        return None
    if len(key) != TOKEN_KEY_HEX_LENGTH:
        raise ValueError("TOKEN_ENCRYPTION_KEY must be a 64 character hex string (32 bytes)")
    return bytes.fromhex(key)


def encrypt_token(plaintext: str) -> str:
    """Encrypt an OAuth token for storage.

    Returns ``iv:authTag:ciphertext`` as hex, or the plaintext unchanged when no
    encryption key is configured.
    """
    key = _get_token_key()
    if key is None:
        return plaintext

    iv = os.urandom(TOKEN_IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, auth_tag = sealed[:-GCM_TAG_LENGTH], sealed[-GCM_TAG_LENGTH:]
    return f"{iv.hex()}:{auth_tag.hex()}:{ciphertext.hex()}"


def decrypt_token(value: str) -> str:
    """Decrypt a stored token.

    Values that are not ``iv:authTag:ciphertext`` triples, or that fail
    authentication, are legacy plaintext and come back unchanged.
    """
    key = _get_token_key()
    if key is None:
        return value

    parts = value.split(":")
    if len(parts) != 3:
        return value

    iv_hex, auth_tag_hex, ciphertext_hex = parts
    try:
        iv = bytes.fromhex(iv_hex)
        sealed = bytes.fromhex(ciphertext_hex) + bytes.fromhex(auth_tag_hex)
        return AESGCM(key).decrypt(iv, sealed, None).decode("utf-8")
    except (InvalidTag, ValueError):
        logger.warning("token_decrypt_failed returning stored value unchanged")
        return value


def is_token_expired(expiry: datetime | None, buffer_minutes: int | None = None) -> bool:
    if expiry is None:
        return True
    if buffer_minutes is None:
        buffer_minutes = settings.token_refresh_buffer_minutes
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) > expiry - timedelta(minutes=buffer_minutes)


def encrypt_temp_data(data: Any) -> str:
    return encrypt_token(json.dumps(data, separators=(",", ":")))


def decrypt_temp_data(value: str) -> Any | None:
    try:
        return json.loads(decrypt_token(value))
    except (json.JSONDecodeError, ValueError):
        logger.warning("temp_data_decrypt_failed")
        return None
