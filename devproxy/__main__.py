"""
Start one proxy listener per entry of proxy_config.json.

Usage:
    python -m devproxy [config_dir] [--verbose]
"""

import argparse
import logging
import sys
import threading
from typing import List

from .config import ProxyConfig
from .server import ProxyServer

logger = logging.getLogger(__name__)


def _run(server: ProxyServer, failed: List[ProxyServer]) -> None:
    try:
        server.start()
    except OSError as e:
        logger.error(f"Proxy on {server.host}:{server.port} failed: {e}")
        failed.append(server)


def create_servers(config: ProxyConfig) -> List[ProxyServer]:
    """Build a server for every valid entry; invalid entries are skipped."""
    servers = []
    for index in range(len(config.entries)):
        try:
            route_config = config.route_config(index)
        except ValueError as e:
            logger.error(f"Skipping proxy entry #{index}: {e}")
            continue
        servers.append(ProxyServer(route_config))
    return servers


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="devproxy",
        description="Serve local files and forward everything else to a remote server."
    )
    parser.add_argument("config_dir", nargs="?", default=None,
                        help="directory containing proxy_config.json (default: cwd)")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = ProxyConfig(args.config_dir)
    except ValueError as e:
        logger.error(str(e))
        return 1

    servers = create_servers(config)
    if not servers:
        logger.error("No proxy instance could be started")
        return 1

    threads = []
    failed = []
    for server in servers:
        thread = threading.Thread(target=_run, args=(server, failed))
        thread.daemon = True
        thread.start()
        threads.append(thread)

    try:
        for thread in threads:
            while thread.is_alive():
                thread.join(timeout=0.5)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        for server in servers:
            server.shutdown()
        return 0

    # Every listener has stopped; report the ones that never came up
    if failed:
        logger.error(f"{len(failed)} of {len(servers)} proxy instances failed to start")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
