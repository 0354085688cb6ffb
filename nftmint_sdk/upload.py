"""
Content upload stage: fingerprint, consult the cache, upload with retry.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

from ._rate_limited_log import rate_limited_log
from .cache import ArtifactCache, MemoryArtifactCache
from .cancel import CancelToken, check_cancelled
from .exceptions import InvalidInput, NetworkError, ServiceError, StorageUnavailable, UploadFailed
from .models import UploadRecord
from .storage import ContentStoreClient
from .utils import canonical_json, fingerprint_bytes, fingerprint_document, truncate

JSON_MIME_TYPE = "application/json"


def is_transient(error: Exception) -> bool:
    """True for failures worth retrying"""
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, ServiceError):
        return error.transient
    return False


class ContentUploader:
    """
    Uploads raw bytes and JSON documents at most once per fingerprint.

    Identical content is served from the artifact cache without a network
    call. Misses are uploaded with bounded retry and exponential backoff;
    only network errors and transient service errors are retried.
    """

    def __init__(
        self,
        store: ContentStoreClient,
        cache: Optional[ArtifactCache] = None,
        max_attempts: int = 3,
        backoff_factor: float = 0.5,
        max_backoff: float = 8.0,
        logger: Optional[logging.Logger] = None
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.cache = cache if cache is not None else MemoryArtifactCache()
        self.max_attempts = max_attempts
        self.backoff_factor = backoff_factor
        self.max_backoff = max_backoff
        self.logger = logger or logging.getLogger(__name__)

    def upload_bytes(self, data: bytes, mime_type: str, cancel: Optional[CancelToken] = None) -> str:
        """
        Upload raw content and return its URI

        Raises:
            InvalidInput: If data is empty or mime_type missing (no network call made)
            UploadFailed: If every attempt failed
            Cancelled: If the run was cancelled before an attempt
        """
        if not isinstance(data, (bytes, bytearray)) or len(data) == 0:
            raise InvalidInput("Cannot upload zero-length content")
        if not mime_type:
            raise InvalidInput("A MIME type is required")
        data = bytes(data)

        record = self._upload(
            fingerprint_bytes(data, mime_type),
            mime_type,
            len(data),
            lambda: self.store.upload(data, mime_type),
            cancel,
        )
        return record.uri

    def upload_document(self, document: Dict[str, Any], cancel: Optional[CancelToken] = None) -> str:
        """
        Upload a JSON document and return its URI

        Raises:
            InvalidInput: If the document is empty or not JSON serializable
            UploadFailed: If every attempt failed
            Cancelled: If the run was cancelled before an attempt
        """
        if not isinstance(document, dict) or not document:
            raise InvalidInput("Cannot upload an empty JSON document")
        try:
            size = len(canonical_json(document))
        except (TypeError, ValueError) as e:
            raise InvalidInput(str(e))

        record = self._upload(
            fingerprint_document(document),
            JSON_MIME_TYPE,
            size,
            lambda: self.store.upload_json(document),
            cancel,
        )
        return record.uri

    def _cached(self, fingerprint: str) -> Optional[UploadRecord]:
        try:
            return self.cache.get(fingerprint)
        except StorageUnavailable as e:
            rate_limited_log(f"Artifact cache unavailable, treating as empty: {e}", logger_instance=self.logger)
            return None

    def _upload(
        self,
        fingerprint: str,
        mime_type: str,
        size: int,
        send: Callable[[], str],
        cancel: Optional[CancelToken],
    ) -> UploadRecord:
        record = self._cached(fingerprint)
        if record is not None:
            self.logger.debug(f"Cache hit for {fingerprint[:12]}…: {truncate(record.uri, 20)}")
            return record

        with self.cache.lock(fingerprint):
            # another run may have finished the same upload while we waited
            record = self._cached(fingerprint)
            if record is not None:
                return record

            uri = self._send_with_retry(send, cancel)
            record = UploadRecord(fingerprint=fingerprint, uri=uri, mime_type=mime_type, size=size)
            try:
                record = self.cache.put(fingerprint, record)
            except StorageUnavailable as e:
                rate_limited_log(f"Could not record upload in artifact cache: {e}", logger_instance=self.logger)

        self.logger.info(f"Uploaded {size} bytes ({mime_type}) as {record.uri}")
        return record

    def _send_with_retry(self, send: Callable[[], str], cancel: Optional[CancelToken]) -> str:
        attempt = 0
        while True:
            check_cancelled(cancel, "upload")
            attempt += 1
            try:
                return send()
            except InvalidInput as e:
                raise UploadFailed(e, attempt)
            except (NetworkError, ServiceError) as e:
                if not is_transient(e) or attempt >= self.max_attempts:
                    self.logger.error(f"Upload failed on attempt {attempt}/{self.max_attempts}: {e}")
                    raise UploadFailed(e, attempt)
                wait_time = min(self.backoff_factor * (2 ** (attempt - 1)), self.max_backoff)
                rate_limited_log(
                    f"Retrying upload after {wait_time}s due to: {e}",
                    logger_instance=self.logger,
                )
                time.sleep(wait_time)
