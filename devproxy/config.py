from typing import Any, Dict, List
import json
import os
import re

from .models import LocalProxyTarget, LocalStaticConfig, RouteConfig, ServerAddress

CONFIG_FILENAME = "proxy_config.json"


def build_route_config(entry: Dict[str, Any], base_dir: str = ".") -> RouteConfig:
    """
    Build one RouteConfig from a configuration entry.

    Args:
        entry: Mapping with 'remote', 'local', 'port' and optional 'rule',
            'host' and 'timeout'
        base_dir: Directory a relative static root is resolved against

    Raises:
        ValueError: If the entry is incomplete or invalid; bad addresses
            raise InvalidAddressFormat
    """
    if not isinstance(entry, dict):
        raise ValueError(f"Route entry must be an object, got {type(entry).__name__}")

    settings = dict(ProxyConfig.ENTRY_DEFAULTS)
    settings.update(entry)

    for key in ("remote", "local", "port"):
        if settings.get(key) is None:
            raise ValueError(f"Route entry is missing '{key}'")

    port = settings["port"]
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
        raise ValueError(f"Invalid port: {port!r}")

    rule = settings.get("rule")
    if rule is not None:
        try:
            rule = re.compile(rule)
        except (re.error, TypeError) as e:
            raise ValueError(f"Invalid rule {rule!r}: {e}")

    local = settings["local"]
    if isinstance(local, str):
        local = LocalProxyTarget(ServerAddress.parse(local))
    elif isinstance(local, dict):
        local = LocalStaticConfig(
            root=os.path.join(base_dir, local.get("root") or "."),
            prefix=local.get("prefix") or "/",
            index=local.get("index") or "/index.html"
        )
    else:
        raise ValueError(f"'local' must be an address or an object, got {local!r}")

    return RouteConfig(
        port=port,
        remote=ServerAddress.parse(settings["remote"]),
        local=local,
        rule=rule,
        host=settings["host"],
        timeout=float(settings["timeout"])
    )


class ProxyConfig:
    """Configuration manager for the proxy instances."""

    ENTRY_DEFAULTS = {
        "host": "0.0.0.0",
        "timeout": 30,
        "rule": None
    }

    def __init__(self, config_dir: str = None):
        """
        Initialize configuration from a directory.

        Args:
            config_dir: Directory holding proxy_config.json; defaults to the
                current working directory
        """
        self.config_dir = os.path.abspath(config_dir or os.getcwd())
        self.config_path = os.path.join(self.config_dir, CONFIG_FILENAME)
        self.entries = self._load_config_file()

    def _load_config_file(self) -> List[Dict[str, Any]]:
        """Load the route entries from the JSON configuration file."""
        try:
            with open(self.config_path, 'r') as f:
                file_config = json.load(f)
        except (OSError, ValueError) as e:
            raise ValueError(f"Error loading config file {self.config_path}: {e}")

        # A single object or a list of them
        if isinstance(file_config, list):
            return file_config
        return [file_config]

    def route_config(self, index: int) -> RouteConfig:
        """
        Build the RouteConfig of one entry.

        Args:
            index: Position of the entry in the configuration file
        """
        return build_route_config(self.entries[index], self.config_dir)
