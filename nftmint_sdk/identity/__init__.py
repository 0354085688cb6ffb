"""
Identity module for the NFT mint SDK.

Resolves the authority signer used to pay for and sign mint transactions
from one of several secret sources:

    0x<hex>          raw private key
    env:VAR          private key held in environment variable VAR
    file:PATH        key file: hex text, a JSON byte array, or an encrypted
                     JSON keystore (password from NFTMINT_KEYSTORE_PASSWORD)
    store:LABEL      key kept in the local encrypted key store
"""
import os
import json
import time
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List

from eth_account import Account

from nftmint_sdk.exceptions import IdentityError
from nftmint_sdk.signer import Signer
from nftmint_sdk.signer.local import LocalSigner
from nftmint_sdk.identity.key_store import KeyStore
from nftmint_sdk.identity.crypto import encrypt_key_data, decrypt_key_data

__all__ = [
    'resolve_signer',
    'create_signer',
    'list_labels',
    'delete_local',
    'KeyStore',
]

logger = logging.getLogger(__name__)

KEYSTORE_PASSWORD_ENV = "NFTMINT_KEYSTORE_PASSWORD"

_key_store = None
_key_store_path_cache = None


def _get_key_store() -> KeyStore:
    """Get or create the module KeyStore, following NFTMINT_KEY_STORE_PATH"""
    global _key_store, _key_store_path_cache

    path = os.environ.get("NFTMINT_KEY_STORE_PATH")

    if _key_store is None or path != _key_store_path_cache:
        _key_store = KeyStore(path)
        _key_store_path_cache = path

    return _key_store


def _signer_from_hex(value: str, source: str) -> LocalSigner:
    value = value.strip()
    if not value:
        raise IdentityError(f"Secret source {source} is empty")
    try:
        return LocalSigner(value)
    except Exception as e:
        # eth_keys raises its own ValidationError for bad lengths; never echo the secret itself
        raise IdentityError(f"Secret source {source} does not hold a valid private key: {type(e).__name__}")


def _signer_from_file(path: Path) -> LocalSigner:
    source = f"file:{path}"
    try:
        content = path.read_text()
    except OSError as e:
        raise IdentityError(f"Cannot read key file {path}: {e.strerror}")

    stripped = content.strip()
    if not stripped.startswith(("{", "[")):
        return _signer_from_hex(stripped, source)

    try:
        parsed = json.loads(stripped)
    except ValueError:
        raise IdentityError(f"Key file {path} is not valid JSON")

    # wallet-style byte array; the first 32 bytes are the secret
    if isinstance(parsed, list):
        if len(parsed) not in (32, 64) or not all(isinstance(b, int) and 0 <= b <= 255 for b in parsed):
            raise IdentityError(f"Key file {path} must hold 32 or 64 bytes")
        return _signer_from_hex(bytes(parsed[:32]).hex(), source)

    password = os.environ.get(KEYSTORE_PASSWORD_ENV)
    if password is None:
        raise IdentityError(f"{KEYSTORE_PASSWORD_ENV} must be set to decrypt {path}")
    try:
        private_key = Account.decrypt(parsed, password)
    except (ValueError, KeyError, TypeError) as e:
        raise IdentityError(f"Failed to decrypt keystore {path}: {e}")
    return _signer_from_hex(private_key.hex(), source)


def _signer_from_store(label: str) -> LocalSigner:
    entry = _get_key_store().get_key(label)
    if entry is None:
        raise IdentityError(f"No key named {label!r} in the local key store")
    try:
        data = decrypt_key_data(entry)
    except ValueError as e:
        raise IdentityError(f"Cannot decrypt key {label!r}: {e}")
    return _signer_from_hex(data.get("private_key", ""), f"store:{label}")


def resolve_signer(secret_source: Optional[str]) -> Signer:
    """
    Resolve a signer from a secret source.

    Args:
        secret_source: One of the forms listed in the module docstring

    Returns:
        Signer bound to the resolved key

    Raises:
        IdentityError: If the secret is absent or malformed
    """
    if not secret_source or not secret_source.strip():
        raise IdentityError("No secret source provided")

    secret_source = secret_source.strip()
    scheme, sep, rest = secret_source.partition(":")

    if sep and scheme == "env":
        value = os.environ.get(rest)
        if value is None:
            raise IdentityError(f"Environment variable {rest} is not set")
        signer = _signer_from_hex(value, secret_source)
    elif sep and scheme == "file":
        signer = _signer_from_file(Path(rest).expanduser())
    elif sep and scheme == "store":
        signer = _signer_from_store(rest)
    else:
        signer = _signer_from_hex(secret_source, "<inline key>")

    logger.debug("Resolved signer %s… from %s source", signer.address[:10], scheme if sep else "inline")
    return signer


def create_signer(label: str, overwrite: bool = False) -> Signer:
    """
    Generate a new authority key and keep it, encrypted, in the local key store.

    Raises:
        IdentityError: If the label is already taken and overwrite is False
    """
    start_time = time.time()
    store = _get_key_store()

    if not label:
        raise IdentityError("Key label must not be empty")
    if store.get_key(label) is not None and not overwrite:
        raise IdentityError(f"A key named {label!r} already exists")

    account = Account.create()
    encrypted = encrypt_key_data({"private_key": account.key.hex()})
    metadata = {
        "address": account.address,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    store.add_key(label, encrypted, metadata)

    elapsed_ms = (time.time() - start_time) * 1000
    logger.debug("Created key %r (%s…) in %.2f ms", label, account.address[:10], elapsed_ms)

    return LocalSigner(account.key.hex())


def list_labels() -> List[str]:
    """Labels of all locally stored keys"""
    return _get_key_store().list_labels()


def delete_local() -> None:
    """
    Delete all locally stored keys.

    Warning: funds held by these addresses become inaccessible.
    """
    _get_key_store().clear()
    logger.info("Deleted all local key data")
