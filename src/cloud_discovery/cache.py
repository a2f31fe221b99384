"""
Cache backends for discovery results
"""
import hashlib
import json
import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .interfaces import Cache
from .models import DiscoveryResult

logger = logging.getLogger(__name__)


class MemoryCache(Cache):
    """Process-local cache with per-entry TTL"""

    def __init__(self):
        self._entries: Dict[str, Tuple[float, DiscoveryResult]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[DiscoveryResult]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return result

    def set(self, key: str, result: DiscoveryResult, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, result)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        now = time.monotonic()
        with self._lock:
            return [k for k, (expires_at, _) in self._entries.items() if now < expires_at]


class FileCache(Cache):
    """
    JSON file per entry under a cache directory.

    The file stores its own expiry so entries written with different TTLs
    coexist; the payload is the canonical DiscoveryResult JSON.
    """

    def __init__(self, cache_dir: Union[str, Path] = '.cache/cloud-discovery'):
        self.cache_dir = Path(cache_dir).expanduser()
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        digest = hashlib.md5(key.encode()).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def _read(self, path: Path) -> Optional[dict]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Discarding unreadable cache file {path}: {e}")
            path.unlink(missing_ok=True)
            return None

    def get(self, key: str) -> Optional[DiscoveryResult]:
        path = self._path(key)
        entry = self._read(path)
        if entry is None:
            return None
        if time.time() >= entry.get('expires_at', 0):
            path.unlink(missing_ok=True)
            return None
        return DiscoveryResult.from_dict(entry['result'])

    def set(self, key: str, result: DiscoveryResult, ttl: float) -> None:
        entry = {
            'key': key,
            'expires_at': time.time() + ttl,
            'result': result.to_dict(),
        }
        path = self._path(key)
        tmp_path = path.with_suffix('.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(entry, f)
        tmp_path.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def clear(self) -> None:
        for cache_file in self.cache_dir.glob("*.json"):
            cache_file.unlink(missing_ok=True)
        logger.info(f"Cache cleared: {self.cache_dir}")

    def keys(self) -> List[str]:
        now = time.time()
        keys = []
        for cache_file in sorted(self.cache_dir.glob("*.json")):
            entry = self._read(cache_file)
            if entry and now < entry.get('expires_at', 0):
                keys.append(entry['key'])
        return keys
