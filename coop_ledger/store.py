"""
Durable Store Adapter

Uniform read/write interface over two backends, the remote tabular service and
the local cache, with automatic, sticky failover.

## Failover

The adapter starts in StoreMode.REMOTE (unless constructed offline). The first
RemoteUnavailable flips it to StoreMode.OFFLINE; the failing call and every
later call are then served by the local cache. There is no recovery probe:
a new adapter (process restart) is needed to try the remote again.

The mode lives on the adapter instance, which is injected into the
repository, so tests control it through the constructor.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import RemoteUnavailable
from .local_cache import LocalCache
from .remote_client import RemoteTableClient

logger = logging.getLogger(__name__)


class StoreMode(str, Enum):
    REMOTE = "remote"
    OFFLINE = "offline"


@dataclass
class WriteAck:
    """Outcome of a write: which backend applied it and whether a row matched."""
    backend: str
    applied: bool = True


class StoreAdapter:
    """Reads and writes whole collections, remote first, local on failure."""

    WRITE_OPS = ("create", "update", "delete")

    def __init__(self, remote: RemoteTableClient, cache: LocalCache,
                 offline: bool = False, mirror_remote_reads: bool = True):
        """
        Initialize store adapter.

        Args:
            remote: Remote tabular service client
            cache: Local durable cache
            offline: Start in OFFLINE mode (also implied by a disabled remote)
            mirror_remote_reads: Copy each successful remote read into the
                local cache so a later failover starts from recent data
        """
        self.remote = remote
        self.cache = cache
        self.mirror_remote_reads = mirror_remote_reads

        if offline or not remote.enabled:
            self.mode = StoreMode.OFFLINE
        else:
            self.mode = StoreMode.REMOTE

        logger.info(f"Store adapter initialized in {self.mode.value} mode")

    @property
    def offline(self) -> bool:
        return self.mode is StoreMode.OFFLINE

    def _go_offline(self, error: RemoteUnavailable, what: str) -> None:
        self.mode = StoreMode.OFFLINE
        logger.warning(
            f"Remote unavailable during {what}, switching to local cache: {error}",
            extra={"mode": self.mode.value},
        )

    def read_all(self, collection: str) -> List[Dict[str, Any]]:
        """
        Read every row of a collection.

        Args:
            collection: Collection name

        Returns:
            List of row dicts (possibly empty)
        """
        if self.mode is StoreMode.REMOTE:
            try:
                rows = self.remote.read_collection(collection)
            except RemoteUnavailable as e:
                self._go_offline(e, f"read {collection}")
            else:
                if self.mirror_remote_reads:
                    self.cache.write(collection, rows)
                return rows

        return self.cache.read(collection)

    def write(self, op: str, collection: str,
              record: Optional[Dict[str, Any]] = None,
              record_id: Optional[str] = None,
              id_field: str = "id") -> WriteAck:
        """
        Apply a create, update or delete.

        Args:
            op: "create", "update" or "delete"
            collection: Collection name
            record: Full row (create) or changed columns (update)
            record_id: Target row id (update, delete)
            id_field: Column holding the row id in this collection

        Returns:
            WriteAck naming the backend that applied the write

        Raises:
            ValueError: If op is unknown or required arguments are missing
        """
        if op not in self.WRITE_OPS:
            raise ValueError(f"Unsupported write op: {op}")
        if op == "create" and record is None:
            raise ValueError("create requires a record")
        if op in ("update", "delete") and record_id is None:
            raise ValueError(f"{op} requires a record_id")

        if self.mode is StoreMode.REMOTE:
            try:
                self.remote.write(op, collection, record, record_id)
            except RemoteUnavailable as e:
                self._go_offline(e, f"{op} {collection}")
            else:
                return WriteAck(backend=StoreMode.REMOTE.value)

        return self._write_local(op, collection, record, record_id, id_field)

    def _write_local(self, op: str, collection: str,
                     record: Optional[Dict[str, Any]],
                     record_id: Optional[str],
                     id_field: str) -> WriteAck:
        rows = self.cache.read(collection)

        if op == "create":
            rows.append(dict(record))
            applied = True
        elif op == "update":
            applied = False
            for row in rows:
                if str(row.get(id_field)) == str(record_id):
                    row.update(record or {})
                    applied = True
                    break
        else:
            remaining = [r for r in rows if str(r.get(id_field)) != str(record_id)]
            applied = len(remaining) != len(rows)
            rows = remaining

        if not applied:
            logger.debug(
                f"Local {op} {collection}: no row with {id_field}={record_id}",
                extra={"collection": collection, "op": op},
            )
            return WriteAck(backend="local", applied=False)

        self.cache.write(collection, rows)
        return WriteAck(backend="local")

    def status(self, collections: List[str]) -> Dict[str, Any]:
        """Report mode, cache location and the age of each cached collection."""
        return {
            "mode": self.mode.value,
            "remote_enabled": self.remote.enabled,
            "cache_dir": str(self.cache.cache_dir),
            "cache_age_seconds": {
                name: self.cache.get_cache_age(name) for name in collections
            },
        }
