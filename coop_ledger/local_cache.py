"""Local durable cache: one JSON document per collection on disk."""

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional


class LocalCache:
    """Persistent key-value store keyed by collection name.

    Each collection is stored whole as <cache_dir>/<collection>.json.
    read() returns the whole collection (or [] when never written);
    write() replaces the whole collection. There is no partial update and no
    locking: callers re-read before every read-modify-write.
    """

    def __init__(self, cache_dir: Path):
        """
        Initialize local cache.

        Args:
            cache_dir: Directory holding the collection files
        """
        self.cache_dir = Path(cache_dir)
        # Directory is created lazily, on the first write.

    def _path(self, collection: str) -> Path:
        return self.cache_dir / f"{collection}.json"

    def read(self, collection: str) -> List[Dict[str, Any]]:
        """Return every row of a collection, or an empty list."""
        path = self._path(collection)
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def write(self, collection: str, rows: List[Dict[str, Any]]) -> None:
        """Replace a collection with rows.

        Written to a temp file in the same directory and moved into place so
        a crash mid-write never leaves a truncated collection behind.
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.cache_dir), prefix=f".{collection}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f, ensure_ascii=False, indent=1)
            os.replace(tmp_path, self._path(collection))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_cache_age(self, collection: str) -> Optional[float]:
        """Get age of a cached collection in seconds.

        Returns:
            Seconds since the collection file was last written, or None if
            the collection has never been cached
        """
        path = self._path(collection)
        if not path.exists():
            return None
        return time.time() - os.path.getmtime(str(path))
