"""
Remote Tabular Service Client

Wraps HTTP calls to the remote tabular service (a spreadsheet-backed web app)
that holds the authoritative copy of every collection.

The service exposes two request shapes:
- read:  GET  {base_url}?collection=<name>&action=read
         -> {"status": "success", "data": [...]} | {"status": ..., "message": ...}
- write: POST {base_url} with {"action", "collection", "data", "id"}
         -> {"status": "success"} | {"status": ..., "error"|"message": ...}

Anything other than status == "success" is a failure. Every failure, whether
transport (timeout, refused connection, HTTP error) or protocol (bad JSON,
non-success status), surfaces as RemoteUnavailable so the store adapter can
fail over.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import RemoteUnavailable

logger = logging.getLogger(__name__)


class RemoteTableClient:
    """
    Client for the remote tabular service.

    Owns a requests.Session (injectable for tests) and applies the configured
    timeout to every call.
    """

    WRITE_ACTIONS = ("create", "update", "delete")

    def __init__(self, remote_config: Dict[str, Any],
                 session: Optional[requests.Session] = None):
        """
        Initialize remote client.

        Args:
            remote_config: Remote service configuration dict:
                    - enabled: Whether the remote service is used at all
                    - base_url: URL of the service endpoint
                    - timeout_ms: Request timeout in milliseconds
            session: Optional pre-built session (tests pass a fake)
        """
        self.config = remote_config
        self.enabled = bool(self.config.get("enabled", False))
        self.base_url = self.config.get("base_url")
        self.timeout_ms = self.config.get("timeout_ms", 10000)
        self.session = session or requests.Session()

        if self.enabled:
            logger.info(
                "Remote client initialized",
                extra={
                    "base_url": self.base_url,
                    "timeout_ms": self.timeout_ms,
                }
            )
        else:
            logger.info("Remote service disabled, local cache only")

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000.0

    def read_collection(self, collection: str) -> List[Dict[str, Any]]:
        """
        Read every row of a collection.

        Args:
            collection: Collection (sheet) name

        Returns:
            List of row dicts

        Raises:
            RemoteUnavailable: On any transport or protocol failure
        """
        result = self._call(
            "GET",
            params={"collection": collection, "action": "read"},
            what=f"read {collection}",
        )

        data = result.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteUnavailable(
                f"Remote read {collection} returned {type(data).__name__}, expected list"
            )
        return data

    def write(self, action: str, collection: str,
              data: Optional[Dict[str, Any]] = None,
              record_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Send a create, update or delete to the remote service.

        Args:
            action: "create", "update" or "delete"
            collection: Collection (sheet) name
            data: Row (create) or changed columns (update); empty for delete
            record_id: Target row id for update/delete

        Returns:
            The service response dict

        Raises:
            ValueError: If action is not a write action
            RemoteUnavailable: On any transport or protocol failure
        """
        if action not in self.WRITE_ACTIONS:
            raise ValueError(f"Unsupported write action: {action}")

        payload = {
            "action": action,
            "collection": collection,
            "data": data or {},
            "id": record_id,
        }
        return self._call("POST", json=payload, what=f"{action} {collection}")

    def _call(self, method: str, what: str, **kwargs) -> Dict[str, Any]:
        if not self.enabled:
            raise RemoteUnavailable("Remote service disabled")

        try:
            response = self.session.request(
                method, self.base_url, timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
            result = response.json()
        except requests.RequestException as e:
            raise RemoteUnavailable(f"Remote {what} failed: {e}") from e
        except ValueError as e:
            # Body was not JSON (e.g. an HTML error page from the host)
            raise RemoteUnavailable(f"Remote {what} returned invalid JSON: {e}") from e

        if not isinstance(result, dict):
            raise RemoteUnavailable(f"Remote {what} returned a non-object response")

        if result.get("status") != "success":
            message = result.get("error") or result.get("message") or "Operation failed"
            raise RemoteUnavailable(f"Remote {what} failed: {message}")

        logger.debug(f"Remote {what} succeeded")
        return result

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
