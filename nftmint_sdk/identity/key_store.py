"""
Local store of encrypted authority keys.

Keys live in one JSON file, {"keys": {label: entry}}, where each entry is
the encrypted key material plus unencrypted metadata (address, created_at).
"""
import json
import logging
import os
import stat
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import portalocker

from nftmint_sdk.exceptions import IdentityError

logger = logging.getLogger(__name__)

DEFAULT_KEY_STORE_PATH = "~/.nftmint/keys.json"
KEY_STORE_PATH_ENV = "NFTMINT_KEY_STORE_PATH"


class KeyStore:
    """Process-safe key file; every read and write holds a portalocker lock"""

    def __init__(self, store_path: Optional[str] = None, lock_timeout: float = 10):
        path = store_path or os.environ.get(KEY_STORE_PATH_ENV) or DEFAULT_KEY_STORE_PATH
        self.store_path = Path(path).expanduser()
        self.lock_timeout = lock_timeout
        self._create_private_file()

    def _create_private_file(self) -> None:
        directory = self.store_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        if not self.store_path.exists():
            self.store_path.write_text(json.dumps({"keys": {}}))

        if os.name == "posix":
            os.chmod(directory, stat.S_IRWXU)
            os.chmod(self.store_path, stat.S_IRUSR | stat.S_IWUSR)
        else:
            logger.info("Key store permissions cannot be restricted on %s; keep %s private", os.name, self.store_path)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            with portalocker.Lock(str(self.store_path) + ".lock", timeout=self.lock_timeout):
                yield
        except portalocker.exceptions.LockException as e:
            raise IdentityError(f"Key store {self.store_path} is locked by another process: {e}")

    def _load(self) -> Dict[str, Dict[str, Any]]:
        try:
            data = json.loads(self.store_path.read_text())
        except FileNotFoundError:
            return {}
        except ValueError as e:
            raise IdentityError(f"Key store {self.store_path} is corrupt: {e}")
        keys = data.get("keys") if isinstance(data, dict) else None
        if not isinstance(keys, dict):
            raise IdentityError(f"Key store {self.store_path} has no 'keys' table")
        return keys

    def _save(self, keys: Dict[str, Dict[str, Any]]) -> None:
        tmp_path = self.store_path.with_suffix(self.store_path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump({"keys": keys}, f, indent=2)
        if os.name == "posix":
            os.chmod(tmp_path, stat.S_IRUSR | stat.S_IWUSR)
        os.replace(tmp_path, self.store_path)

    def add_key(self, label: str, key_data: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> None:
        """Store key_data (already encrypted) under label, replacing any previous entry"""
        entry = dict(key_data)
        if metadata:
            entry["metadata"] = metadata
        with self._locked():
            keys = self._load()
            keys[label] = entry
            self._save(keys)

    def get_key(self, label: str) -> Optional[Dict[str, Any]]:
        with self._locked():
            return self._load().get(label)

    def list_labels(self) -> List[str]:
        with self._locked():
            return sorted(self._load())

    def delete_key(self, label: str) -> bool:
        """Returns True if an entry was removed"""
        with self._locked():
            keys = self._load()
            if keys.pop(label, None) is None:
                return False
            self._save(keys)
            return True

    def clear(self) -> None:
        with self._locked():
            self._save({})
