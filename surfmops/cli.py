#!/usr/bin/env python3
"""
surfmops Command Line
=====================

Run with:
    surfmops recording.jsonl                   # default configuration file
    surfmops --config barcelona.yaml < rec.jsonl

Reads decoded records (file or standard input), evaluates them and prints
the compliance counters. Exit status: 0 success, 1 malformed input,
2 configuration error.

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

import argparse
import logging
import sys

from .config import DEFAULT_CONFIG_PATH, ConfigError, load_config, setup_logging
from .dgps import DgpsFormatError
from .perf import format_results
from .pipeline import Pipeline
from .records import RecordFormatError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='surfmops',
        description='ED-116 / ED-117 surface surveillance performance evaluator',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  surfmops recording.jsonl
  surfmops --config airport.yaml < recording.jsonl
""")
    parser.add_argument('input', nargs='?', default=None,
                        help='Decoded record file, one JSON record per line '
                             '(default: standard input)')
    parser.add_argument('--config', '-c', default=DEFAULT_CONFIG_PATH,
                        help=f'Configuration file (default: {DEFAULT_CONFIG_PATH})')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"surfmops: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    setup_logging(config.logging)

    try:
        pipeline = Pipeline(config)
        n = pipeline.load_reference()
        if n:
            logger.info("Loaded %d DGPS reference reports", n)
        stream = open(args.input, 'r', encoding='utf-8') if args.input else sys.stdin
    except (OSError, DgpsFormatError) as e:
        logger.error("%s", e)
        return EXIT_INPUT_ERROR

    status = EXIT_OK
    try:
        for line in stream:
            pipeline.add_line(line)
    except RecordFormatError as e:
        logger.error("Malformed input, ignoring the rest of it: %s", e)
        status = EXIT_INPUT_ERROR
    finally:
        if stream is not sys.stdin:
            stream.close()

    print(format_results(pipeline.finish()))
    return status


if __name__ == '__main__':
    sys.exit(main())
