#!/usr/bin/env python3
"""Run a peer node: python -m peer_kv <secret> [options]"""

import os
import sys
import signal
import argparse

from .node import PeerNode
from .yaml_config import load_config
from .logging_utils import setup_logging, get_logger, log_error

logger = get_logger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Start a peer key-value node')
    parser.add_argument('secret', nargs='?', default=os.getenv('PEER_KV_SECRET'),
                        help='Shared cluster secret (or set PEER_KV_SECRET)')
    parser.add_argument('--config-file', help='Configuration file path (or set CONFIG_FILE)')
    parser.add_argument('--host', help='HTTP bind address')
    parser.add_argument('--http-port', type=int, help='HTTP port')
    parser.add_argument('--discovery-port', type=int, help='UDP discovery port')
    parser.add_argument('--log-level', help='DEBUG, INFO, WARNING, ERROR')
    args = parser.parse_args(argv)
    if not args.secret:
        parser.error('a cluster secret is required')
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    
    try:
        config = load_config(args.config_file)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    
    logging_config = config.get_logging_config()
    setup_logging(
        log_level=args.log_level or logging_config.get('level'),
        log_dir=logging_config.get('log_dir')
    )
    
    try:
        node = PeerNode.from_config(
            args.secret,
            config,
            host=args.host,
            http_port=args.http_port,
            discovery_port=args.discovery_port,
        )
    except ValueError as e:
        log_error("startup", str(e))
        return 1
    
    def request_stop(signum, frame):
        logger.info(f"Received signal {signum}, stopping")
        node.stop_event.set()
    
    try:
        node.start()
    except (OSError, ValueError) as e:
        log_error("startup", f"Node failed to start: {e}", node.node_id, e)
        return 1
    
    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)
    
    node.wait()
    node.stop()
    
    if node.fatal_error is not None:
        log_error("fatal", f"Node stopped after fatal error: {node.fatal_error}", node.node_id)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
