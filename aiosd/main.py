#!/usr/bin/env python3
"""AI-OS Daemon - entry point

Usage:
    aiosd [--config PATH] [--socket PATH] [--debug]

Exit status: 0 on clean shutdown, 1 if the listening socket cannot be set up.
"""

import os
import sys
import signal
import logging
import argparse
from pathlib import Path

from .core.daemon import DaemonService
from .core.errors import ListenSetupFailure
from .core.runtime import load_config
from .core.server import DaemonServer


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_file: str, debug: bool = False):
    """Log to stderr and, when writable, to the daemon log file"""
    handlers = [logging.StreamHandler()]
    file_error = None
    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    except OSError as e:
        file_error = e

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    if file_error is not None:
        logging.warning(f"Cannot write log file {log_file}: {file_error}; logging to stderr only")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="aiosd",
        description="AI-OS daemon: natural language shell over a Unix socket",
    )
    parser.add_argument("--config", type=Path, default=None,
                        help="Path to config.yaml (default: $AIOS_CONFIG or /etc/ai-os/config.yaml)")
    parser.add_argument("--socket", default=None,
                        help="Override the listening socket path")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    # Bootstrap logging so config load problems are visible
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format=LOG_FORMAT)

    config = load_config(args.config)
    if args.socket:
        config.socket_path = args.socket
    setup_logging(config.log_file, args.debug)

    logging.info("Starting AI-OS Daemon")
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        logging.warning("Running as root; executed commands will have full privileges")
    if not config.gate_enforced:
        logging.warning("Safety gate is NOT enforced (safety_mode off or safety_bypass on)")

    service = DaemonService(config)
    server = DaemonServer(service)

    def _handle_signal(signum, frame):
        logging.info(f"Received signal {signum}, shutting down")
        server.shutdown()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        server.start()
    except ListenSetupFailure as e:
        logging.error(f"Failed to initialize daemon: {e}")
        service.close()
        return 1

    try:
        server.serve_forever()
    finally:
        server.close()

    logging.info("AI-OS Daemon stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
