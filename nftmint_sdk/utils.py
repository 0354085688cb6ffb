"""
Utility functions for the NFT mint SDK.
"""
import base64
import hashlib
import json
from typing import Any, Dict, Union

import base58

from .exceptions import InvalidInput

IPFS_SCHEME = "ipfs://"

# sha2-256 multihash header (code 0x12, length 32)
_SHA256_MULTIHASH_PREFIX = b"\x12\x20"


def sha256_hex(data: Union[str, bytes]) -> str:
    """
    Calculate SHA-256 hash and return hex string

    Args:
        data: String or bytes to hash

    Returns:
        Hex string of the hash (without 0x prefix)
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def canonical_json(document: Dict[str, Any]) -> bytes:
    """
    Encode a JSON document deterministically (sorted keys, compact separators).

    Raises:
        TypeError: If document is not a dictionary
        ValueError: If document contains values JSON cannot encode
    """
    if not isinstance(document, dict):
        raise TypeError(f"Document must be a dictionary, got {type(document).__name__}")
    try:
        return json.dumps(
            document, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")
    except TypeError as e:
        raise ValueError(f"Document is not JSON serializable: {e}")


def fingerprint_bytes(data: bytes, mime_type: str) -> str:
    """Fingerprint raw content. The MIME type is part of the digest input."""
    return sha256_hex(b"raw:" + mime_type.encode("utf-8") + b"\x00" + data)


def fingerprint_document(document: Dict[str, Any]) -> str:
    """Fingerprint a JSON document by its canonical encoding."""
    return sha256_hex(b"json:" + canonical_json(document))


def normalize_cid(cid: str) -> str:
    """
    Validate an IPFS CID and return it stripped of whitespace.

    Accepts CIDv0 (base58btc "Qm...") and CIDv1 in base32 ("b...").

    Raises:
        InvalidInput: If the CID is malformed
    """
    if not isinstance(cid, str):
        raise InvalidInput(f"CID must be a string, got {type(cid).__name__}")
    cid = cid.strip()
    if not cid:
        raise InvalidInput("CID is empty")

    if cid.startswith("Qm"):
        try:
            decoded = base58.b58decode(cid)
        except ValueError as e:
            raise InvalidInput(f"Invalid base58 CID {cid!r}: {e}")
        if len(decoded) != 34 or not decoded.startswith(_SHA256_MULTIHASH_PREFIX):
            raise InvalidInput(f"CIDv0 {cid!r} is not a sha2-256 multihash")
        return cid

    if cid.startswith("b"):
        body = cid[1:].upper()
        padding = "=" * (-len(body) % 8)
        try:
            decoded = base64.b32decode(body + padding)
        except ValueError as e:
            raise InvalidInput(f"Invalid base32 CID {cid!r}: {e}")
        if not decoded or decoded[0] != 0x01:
            raise InvalidInput(f"CID {cid!r} is not a CIDv1")
        return cid

    raise InvalidInput(f"Unsupported CID encoding: {cid!r}")


def cid_to_uri(cid: str) -> str:
    """Convert a CID to an ipfs:// URI"""
    return IPFS_SCHEME + normalize_cid(cid)


def uri_to_cid(uri: str) -> str:
    """
    Extract the CID from an ipfs:// URI or a gateway URL (.../ipfs/<cid>).

    Raises:
        InvalidInput: If no CID can be found
    """
    if not isinstance(uri, str) or not uri:
        raise InvalidInput("URI must be a non-empty string")
    if uri.startswith(IPFS_SCHEME):
        path = uri[len(IPFS_SCHEME):]
    elif "/ipfs/" in uri:
        path = uri.split("/ipfs/", 1)[1]
    else:
        raise InvalidInput(f"Not an IPFS URI: {uri}")
    return normalize_cid(path.split("/", 1)[0])


def gateway_url(uri: str, gateway: str) -> str:
    """Map an ipfs:// URI to an HTTP gateway URL"""
    return f"{gateway.rstrip('/')}/ipfs/{uri_to_cid(uri)}"


def truncate(value: str, keep: int = 10) -> str:
    """Shorten long identifiers for log output"""
    if len(value) <= keep:
        return value
    return f"{value[:keep]}…"
