#!/usr/bin/env python3
"""
regman - Registry Manager CLI

Lists every repository of a container registry with its tags, newest first,
and the creation time of each tag's most recent layer.
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from .assembler import OUTPUT_FORMATS, assemble, render, to_report
from .config import Config, init_config, load_config, resolve_target
from .dispatcher import Dispatcher
from .errors import MissingTargetError
from .fetcher import RegistryContext
from .registry import RegistryClient

log = logging.getLogger('regman')

EXIT_OK = 0
EXIT_USAGE = 2

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    # Keep connection chatter out of --verbose output
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def build_context(args, config: Config) -> RegistryContext:
    """Combine flags, config settings and the resolved target into a context"""
    settings = config.settings
    endpoint, alias_insecure = resolve_target(args.target, config)

    return RegistryContext(
        endpoint=endpoint,
        connect_timeout=args.connect_timeout or settings.connect_timeout,
        read_timeout=args.read_timeout or settings.read_timeout,
        verify_tls=not (args.insecure or alias_insecure or settings.insecure),
        max_workers=args.workers or settings.workers,
    )


def resolve_deadline(args, config: Config) -> Optional[float]:
    if args.deadline is None:
        return config.settings.deadline
    # 0 disables the deadline
    return args.deadline or None


def scan_command(args) -> int:
    """Walk the registry and print the report"""
    if not args.target:
        raise MissingTargetError()

    config = load_config(args.config)

    try:
        context = build_context(args, config)
    except ValueError as e:
        log.error("Invalid registry address %r: %s", args.target, e)
        return EXIT_USAGE

    start_time = time.monotonic()
    with context:
        log.info("Scanning %s", context.endpoint)
        dispatcher = Dispatcher(
            RegistryClient(context),
            max_workers=context.max_workers,
            deadline=resolve_deadline(args, config),
        )
        result = dispatcher.run()

        print(render(to_report(assemble(result)), args.output_format))

        if dispatcher.timed_out:
            log.warning("Report is partial: %d tasks did not finish in time", dispatcher.abandoned)
            log.warning(
                "Exit waits for in-flight requests, at most %.0fs connect + %.0fs read each",
                context.connect_timeout,
                context.read_timeout,
            )
        log.info("req: %d, elapsed %.3fs", context.request_count, time.monotonic() - start_time)

    return EXIT_OK


def init_config_command(args) -> int:
    """Write an example configuration file"""
    path, written = init_config(args.config)
    if written:
        log.info("Wrote example configuration to %s", path)
    else:
        log.info("Configuration already exists at %s", path)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='regman',
        description='List repositories and tags of a container registry, newest first',
    )
    parser.add_argument('target', nargs='?',
                        help='Registry alias from the config file, or host[:port] / scheme://host[:port]')
    parser.add_argument('--config',
                        help='Config file (default: $REGMAN_CONFIG or ~/.regman/config.yaml)')
    parser.add_argument('--init-config', action='store_true',
                        help='Write an example config file and exit')
    parser.add_argument('--insecure', action='store_true',
                        help='Skip TLS certificate verification (self-signed registries)')
    parser.add_argument('--workers', type=int,
                        help='Maximum concurrent requests (default: 16)')
    parser.add_argument('--connect-timeout', type=float,
                        help='Connect/handshake timeout in seconds (default: 5)')
    parser.add_argument('--read-timeout', type=float,
                        help='Read timeout in seconds (default: 10)')
    parser.add_argument('--deadline', type=float,
                        help='Give up on outstanding requests after this many seconds, 0 for no limit (default: 300)')
    parser.add_argument('--output-format', choices=OUTPUT_FORMATS, default='json',
                        help='Output format (default: json)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.workers is not None and args.workers < 1:
        parser.error('--workers must be at least 1')

    setup_logging(args.verbose)

    if args.init_config:
        return init_config_command(args)

    try:
        return scan_command(args)
    except MissingTargetError as e:
        log.error("%s", e)
        parser.print_usage(sys.stderr)
        return EXIT_USAGE


if __name__ == '__main__':
    sys.exit(main())
