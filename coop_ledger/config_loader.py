"""Two-tier configuration loading: bundled defaults + operator override."""

import copy
import hashlib
import os
import time
import urllib.parse
from pathlib import Path
from typing import Any, Dict, Optional

import requests
import yaml
from importlib.resources import files


class ConfigLoader:
    """Handles two-tier configuration: bundled local-config.yaml + operator config."""

    CONFIG_ENV_VAR = "COOP_LEDGER_CONFIG"
    CACHE_DIR_ENV_VAR = "COOP_LEDGER_CACHE_DIR"

    def __init__(self, config_uri: Optional[str] = None):
        """
        Initialize config loader.

        The bundled local-config.yaml supplies every default. An operator
        config, when given (argument or COOP_LEDGER_CONFIG), is deep-merged
        over it.

        Args:
            config_uri: Path, file:// or http(s):// URI of an override YAML file
        """
        config_file = files("coop_ledger").joinpath("local-config.yaml")
        self.local_config_path = str(config_file)

        with config_file.open("r") as f:
            self.local_config = yaml.safe_load(f) or {}

        self.config_uri = config_uri or os.environ.get(self.CONFIG_ENV_VAR)

        if self.config_uri:
            override = self._load_config_from_uri(self.config_uri)
            self.config = _deep_merge(self.local_config, override)
        else:
            self.config = copy.deepcopy(self.local_config)

        self.config_loaded_at = time.time()

    def _load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file from disk."""
        with open(path) as f:
            return yaml.safe_load(f) or {}

    def _load_config_from_uri(self, uri: str) -> Dict[str, Any]:
        """
        Load config from URI (with caching for remote files).

        Supports:
        - Plain paths - /etc/coop-ledger.yaml, ./ledger.yaml
        - file:// - Local filesystem (absolute paths)
        - https:// / http:// - Remote, fetched once and cached

        Args:
            uri: Config URI or path

        Returns:
            Parsed YAML config
        """
        parsed = urllib.parse.urlparse(uri)

        if not parsed.scheme:
            return self._load_yaml(os.path.abspath(os.path.expanduser(uri)))

        if parsed.scheme == "file":
            return self._load_yaml(urllib.parse.unquote(parsed.path))

        if parsed.scheme in ("http", "https"):
            # The override itself may name a cache directory, so remote configs
            # are cached under the bundled/env default location
            cache_dir = self._resolve_cache_dir(self.local_config)
            cache_dir.mkdir(parents=True, exist_ok=True)
            cache_key = hashlib.sha256(uri.encode()).hexdigest()
            cache_path = cache_dir / f"config_{cache_key}.yaml"

            if cache_path.exists():
                return self._load_yaml(str(cache_path))

            content = self._fetch_uri(uri)
            cache_path.write_text(content)
            return yaml.safe_load(content) or {}

        raise ValueError(f"Unsupported URI scheme: {parsed.scheme} in {uri}")

    def _fetch_uri(self, uri: str) -> str:
        """Fetch content from HTTP/HTTPS URI."""
        try:
            response = requests.get(uri, timeout=10)
            response.raise_for_status()
            return response.text
        except requests.RequestException as e:
            raise RuntimeError(f"Failed to fetch config from {uri}: {e}") from e

    def _resolve_cache_dir(self, config: Dict[str, Any]) -> Path:
        env_dir = os.environ.get(self.CACHE_DIR_ENV_VAR)
        if env_dir:
            return Path(env_dir).expanduser()
        directory = config.get("cache", {}).get("directory") or "~/.cache/coop-ledger"
        return Path(directory).expanduser()

    def get_config(self) -> Dict[str, Any]:
        """Get the merged configuration."""
        return self.config

    def get_remote_config(self) -> Dict[str, Any]:
        """
        Get remote tabular service configuration.

        Returns:
            Dict with enabled, base_url, timeout_ms. enabled is forced to
            False when no base_url is configured.
        """
        remote = dict(self.config.get("remote", {}))
        remote.setdefault("timeout_ms", 10000)
        remote["enabled"] = bool(remote.get("enabled", True) and remote.get("base_url"))
        return remote

    def get_cache_dir(self) -> Path:
        """Get local cache directory (COOP_LEDGER_CACHE_DIR wins over config)."""
        return self._resolve_cache_dir(self.config)

    def get_mirror_remote_reads(self) -> bool:
        return bool(self.config.get("cache", {}).get("mirror_remote_reads", True))

    def get_collections(self) -> Dict[str, str]:
        """Get collection names keyed by record kind (members, transactions, loans, logs)."""
        defaults = {
            "members": "Members",
            "transactions": "Transactions",
            "loans": "Loans",
            "logs": "Logs",
        }
        defaults.update(self.config.get("collections", {}) or {})
        return defaults

    def get_ledger_config(self) -> Dict[str, Any]:
        """Get ledger settings: reserve_account_id, reserve_account_name, system_actor."""
        ledger = {
            "reserve_account_id": "RESERVE",
            "reserve_account_name": "Cooperative Reserve",
            "system_actor": "system",
        }
        ledger.update(self.config.get("ledger", {}) or {})
        return ledger

    def get_log_level(self) -> str:
        return str(self.config.get("logging", {}).get("level", "INFO")).upper()

    def get_config_age(self) -> Optional[float]:
        """
        Get age of the loaded configuration in seconds.

        Returns:
            Age in seconds, or None if not loaded
        """
        if hasattr(self, "config_loaded_at"):
            return time.time() - self.config_loaded_at
        return None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of base with override merged in, recursing into nested dicts."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
