"""
Encryption of stored key material with a libsodium secretbox.

The 32-byte master key comes from the OS keyring. CI runners without a
keyring backend may supply it base64-encoded in NFTMINT_MASTER_KEY.
"""
import base64
import json
import logging
import os
import threading
from typing import Any, Dict, Optional

import keyring
import nacl.exceptions
import nacl.secret
import nacl.utils

from nftmint_sdk.exceptions import IdentityError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "nftmint-sdk"
KEYRING_KEY_NAME = "master-key"
MASTER_KEY_ENV = "NFTMINT_MASTER_KEY"
ENCRYPTION_VERSION = 1

_master_key: Optional[bytes] = None
_master_key_lock = threading.Lock()


def _in_ci() -> bool:
    return os.environ.get("CI") == "true"


def _decode_key(encoded: str, source: str) -> Optional[bytes]:
    try:
        key = base64.b64decode(encoded, validate=True)
    except ValueError:
        logger.warning("Ignoring master key from %s: not valid base64", source)
        return None
    if len(key) != nacl.secret.SecretBox.KEY_SIZE:
        logger.warning("Ignoring master key from %s: expected %d bytes", source, nacl.secret.SecretBox.KEY_SIZE)
        return None
    return key


def _key_from_keyring() -> Optional[bytes]:
    try:
        stored = keyring.get_password(KEYRING_SERVICE, KEYRING_KEY_NAME)
    except Exception as e:
        logger.debug("Keyring access failed: %s", e)
        return None
    return _decode_key(stored, "keyring") if stored else None


def _key_from_env() -> Optional[bytes]:
    encoded = os.environ.get(MASTER_KEY_ENV)
    if not encoded or not _in_ci():
        return None
    return _decode_key(encoded, MASTER_KEY_ENV)


def _new_key() -> bytes:
    key = nacl.utils.random(nacl.secret.SecretBox.KEY_SIZE)
    try:
        keyring.set_password(KEYRING_SERVICE, KEYRING_KEY_NAME, base64.b64encode(key).decode("ascii"))
    except Exception as e:
        if not _in_ci():
            raise IdentityError(f"Cannot store the key store master key in the OS keyring: {e}") from e
        logger.warning("No keyring in CI; keys encrypted now cannot be read by later processes. Set %s", MASTER_KEY_ENV)
    return key


def get_encryption_key() -> bytes:
    """
    Master key for the local key store, looked up once per process.

    Raises:
        IdentityError: If no key exists and a new one cannot be kept
    """
    global _master_key
    with _master_key_lock:
        if _master_key is None:
            _master_key = _key_from_keyring() or _key_from_env() or _new_key()
        return _master_key


def reset_encryption_key_cache() -> None:
    global _master_key
    with _master_key_lock:
        _master_key = None


def encrypt_key_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Encrypt a JSON-serializable dict; the nonce travels inside the ciphertext"""
    box = nacl.secret.SecretBox(get_encryption_key())
    ciphertext = box.encrypt(json.dumps(data).encode("utf-8"))
    return {
        "encrypted": base64.b64encode(ciphertext).decode("ascii"),
        "version": ENCRYPTION_VERSION,
    }


def decrypt_key_data(encrypted_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Raises:
        ValueError: If the entry is malformed, from another version, or fails authentication
    """
    if encrypted_data.get("version") != ENCRYPTION_VERSION:
        raise ValueError(f"Unsupported key encryption version: {encrypted_data.get('version')!r}")
    box = nacl.secret.SecretBox(get_encryption_key())
    try:
        plaintext = box.decrypt(base64.b64decode(encrypted_data["encrypted"]))
        return json.loads(plaintext.decode("utf-8"))
    except (KeyError, ValueError, nacl.exceptions.CryptoError) as e:
        raise ValueError(f"Failed to decrypt key data: {e}")
