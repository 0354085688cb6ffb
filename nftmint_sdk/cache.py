"""
Artifact cache - maps content fingerprints to completed uploads.
"""
import json
import logging
import os
import threading
import weakref
from pathlib import Path
from typing import Dict, Optional, Protocol

import portalocker
from pydantic import ValidationError

from .exceptions import StorageUnavailable
from .models import UploadRecord

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1


class ArtifactCache(Protocol):
    def get(self, fingerprint: str) -> Optional[UploadRecord]:
        ...

    def put(self, fingerprint: str, record: UploadRecord) -> UploadRecord:
        ...

    def lock(self, fingerprint: str) -> threading.Lock:
        ...


class _FingerprintLocks:
    """
    One lock per fingerprint so racing uploads of the same content serialize.

    Locks are only weakly held; a fingerprint's lock goes away once no
    upload is using it.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def lock(self, fingerprint: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(fingerprint)
            if lock is None:
                lock = self._locks[fingerprint] = threading.Lock()
            return lock


class MemoryArtifactCache(_FingerprintLocks):
    """
    In-process cache, retained for the lifetime of the object.

    The first record stored for a fingerprint wins; later puts return it.
    """

    def __init__(self):
        super().__init__()
        self._records: Dict[str, UploadRecord] = {}
        self._records_lock = threading.RLock()

    def get(self, fingerprint: str) -> Optional[UploadRecord]:
        with self._records_lock:
            return self._records.get(fingerprint)

    def put(self, fingerprint: str, record: UploadRecord) -> UploadRecord:
        with self._records_lock:
            return self._records.setdefault(fingerprint, record)

    def __len__(self) -> int:
        with self._records_lock:
            return len(self._records)

    def __contains__(self, fingerprint: str) -> bool:
        with self._records_lock:
            return fingerprint in self._records


class FileArtifactCache(_FingerprintLocks):
    """
    Cache persisted to a JSON file so resumed runs reuse earlier uploads.

    Access is guarded by an inter-process file lock. Any failure to read or
    write the file surfaces as StorageUnavailable.
    """

    def __init__(self, path: str, lock_timeout: float = 10):
        super().__init__()
        self.path = Path(path).expanduser()
        self.lock_timeout = lock_timeout

    def _lock_path(self) -> str:
        return str(self.path) + ".lock"

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f"Cannot read artifact cache {self.path}: {e}")
        if not isinstance(data, dict) or data.get("version") != CACHE_FORMAT_VERSION:
            raise StorageUnavailable(f"Unrecognised artifact cache format in {self.path}")
        records = data.get("records", {})
        if not isinstance(records, dict):
            raise StorageUnavailable(f"Artifact cache {self.path} has no 'records' table")
        return records

    def _store(self, records: Dict[str, dict]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump({"version": CACHE_FORMAT_VERSION, "records": records}, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageUnavailable(f"Cannot write artifact cache {self.path}: {e}")

    def _file_lock(self) -> portalocker.Lock:
        return portalocker.Lock(self._lock_path(), timeout=self.lock_timeout)

    def get(self, fingerprint: str) -> Optional[UploadRecord]:
        try:
            with self._file_lock():
                raw = self._load().get(fingerprint)
        except (portalocker.exceptions.LockException, OSError) as e:
            raise StorageUnavailable(f"Cannot lock artifact cache {self.path}: {e}")
        if raw is None:
            return None
        try:
            return UploadRecord.model_validate(raw)
        except ValidationError as e:
            raise StorageUnavailable(f"Corrupt cache entry for {fingerprint[:12]}: {e}")

    def put(self, fingerprint: str, record: UploadRecord) -> UploadRecord:
        try:
            with self._file_lock():
                records = self._load()
                existing = records.get(fingerprint)
                if existing is not None:
                    logger.debug("Cache already holds %s…, keeping first record", fingerprint[:12])
                    return UploadRecord.model_validate(existing)
                records[fingerprint] = record.model_dump(mode="json")
                self._store(records)
        except (portalocker.exceptions.LockException, OSError) as e:
            raise StorageUnavailable(f"Cannot lock artifact cache {self.path}: {e}")
        except ValidationError as e:
            raise StorageUnavailable(f"Corrupt cache entry for {fingerprint[:12]}: {e}")
        return record
