#!/usr/bin/env python3
"""
devbridge command line: run a command against a managed frontend server,
inspect port markers, and clear leftover HTTP fakes.

Usage:
    devbridge run --url http://localhost:5173 --serve "npm run dev" --cwd frontend -- pytest tests/browser
    devbridge markers --prune
    devbridge clear-fakes
"""
import argparse
import logging
import subprocess
import sys
from datetime import datetime
from typing import List, Optional

from devbridge.bridge import Bridge
from devbridge.config import Config
from devbridge.exceptions import BridgeError
from devbridge.utils.server_markers import ServerMarkers, is_pid_running

logger = logging.getLogger("devbridge.cli")


def _run(args: argparse.Namespace, config: Config) -> int:
    command = list(args.command)
    if command and command[0] == '--':
        command = command[1:]
    if not command:
        logger.error("No command specified to run")
        return 2

    bridge = Bridge(config, api_url=args.api_url)
    try:
        definition = bridge.add(args.url)
        if args.serve:
            definition.serve(args.serve, cwd=args.cwd)
        if args.ready_when:
            definition.ready_when(args.ready_when)
        if args.warmup:
            definition.warmup(args.warmup)
        if args.trust_existing:
            definition.trust_existing_server()

        url = bridge.prepare()
        logger.info(f"Frontend available at {url}")
        logger.info(f"Running: {' '.join(command)}")
        return subprocess.run(command).returncode
    except BridgeError as e:
        logger.error(str(e))
        return 1
    finally:
        bridge.reset()


def _markers(args: argparse.Namespace, config: Config) -> int:
    markers = ServerMarkers(config.marker_dir)
    if args.prune:
        for port in markers.prune_stale():
            print(f"Removed stale marker for port {port}")

    entries = markers.list_markers()
    if not entries:
        print(f"No markers in {markers.marker_dir}")
        return 0

    for marker in entries:
        state = "alive" if is_pid_running(marker['pid']) else "stale"
        started = datetime.fromtimestamp(marker.get('started_at', 0)).isoformat(timespec='seconds')
        print(f"{marker['port']:>5}  pid={marker['pid']} ({state})  started={started}  "
              f"cwd={marker['cwd']}  command={marker.get('command', '')}")
    return 0


def _clear_fakes(args: argparse.Namespace, config: Config) -> int:
    Bridge(config).clear_fakes()
    print(f"Cleared {config.fake_config_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='devbridge',
        description="Manage frontend dev servers for browser tests"
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='action', required=True)

    run = subparsers.add_parser('run', help='Start the frontend, run a command, then stop it')
    run.add_argument('--url', required=True, help='Frontend URL, e.g. http://localhost:5173')
    run.add_argument('--serve', help='Shell command that starts the frontend')
    run.add_argument('--cwd', help='Working directory for the serve command')
    run.add_argument('--ready-when', help='Regex marking the server output as ready')
    run.add_argument('--warmup', type=int, default=0, help='Extra delay in milliseconds after ready')
    run.add_argument('--api-url', help='API base URL injected into the frontend environment')
    run.add_argument('--trust-existing', action='store_true',
                     help='Reuse an unknown server already listening on the port')
    run.add_argument('command', nargs=argparse.REMAINDER, help='Command to run once the frontend is ready')
    run.set_defaults(handler=_run)

    markers = subparsers.add_parser('markers', help='List port ownership markers')
    markers.add_argument('--prune', action='store_true', help='Remove markers whose process is gone')
    markers.set_defaults(handler=_markers)

    clear = subparsers.add_parser('clear-fakes', help='Remove the HTTP fake configuration file')
    clear.set_defaults(handler=_clear_fakes)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format='[BRIDGE] %(message)s')

    config = Config()
    ok, message = config.validate()
    if not ok:
        logger.error(message)
        return 2

    return args.handler(args, config)


if __name__ == "__main__":
    sys.exit(main())
