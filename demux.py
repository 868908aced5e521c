#!/usr/bin/env python3
"""
Access log demultiplexer - split a combined virtual host access log
read from stdin into per-domain, per-month log files.

Usage: demux.py [suffix] < access_log
"""

import argparse
import io
import logging
import os
import re
import sys
from collections import Counter

from accesslog_router import (
    DEFAULT_PREFIX,
    REJECTED,
    ROUTED,
    UNWRITABLE,
    RouterConfig,
    route_entry,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s - %(message)s'

SUFFIX_PATTERN = re.compile(r'[a-z]+')


def filter_suffix(token):
    """Turn a raw suffix token into a '.name' directory suffix."""
    match = SUFFIX_PATTERN.search(token or '')
    if match:
        return '.' + match.group(0)
    return ''


def env_flag(value, default=True):
    """Interpret an environment flag such as '1', '0', 'yes' or 'off'."""
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() not in ('0', 'false', 'no', 'off')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Split a combined virtual host access log read from '
                    'stdin into per-domain, per-month log files',
        epilog='Environment: ACCESSLOG_PREFIX (default ' + DEFAULT_PREFIX +
               '), ACCESSLOG_CREATE_PARENTS, ACCESSLOG_LOG_LEVEL',
    )
    parser.add_argument(
        'suffix',
        nargs='?',
        default='',
        help='Qualifier appended to the month directories '
             '(lowercase letters only, e.g. ssl)',
    )
    return parser.parse_args(argv)


def build_config(argv=None, environ=None):
    """Build the router configuration from arguments and environment."""
    args = parse_args(argv)
    environ = os.environ if environ is None else environ
    return RouterConfig(
        prefix=environ.get('ACCESSLOG_PREFIX') or DEFAULT_PREFIX,
        suffix=filter_suffix(args.suffix),
        create_parents=env_flag(environ.get('ACCESSLOG_CREATE_PARENTS')),
    )


def report(result, line_number=None):
    """Write a diagnostic for a line that could not be stored."""
    where = f'line {line_number}: ' if line_number is not None else ''
    if result.status == REJECTED:
        logger.warning('%sRejected access log entry (%s): %s',
                       where, result.error.kind, result.error)
    elif result.status == UNWRITABLE:
        logger.warning('%sCannot write %s: %s',
                       where, result.path, result.error.strerror or result.error)
    elif result.status != ROUTED:
        logger.debug('%sDiscarded access log entry', where)


def strip_newline(line):
    """Remove the newline ending a line; a carriage return is line content."""
    return line[:-1] if line.endswith('\n') else line


def process_line(line, config, route=route_entry, line_number=None):
    """Route a single line and report its outcome.

    Returns None when routing failed unexpectedly; the failure is logged
    and the caller carries on with the next line.
    """
    try:
        result = route(strip_newline(line), config)
    except Exception:
        # All exceptions are treated as non-fatal
        where = f'line {line_number}: ' if line_number is not None else ''
        logger.exception('%sUnexpected error while processing '
                         'access log entry', where)
        return None
    report(result, line_number)
    return result


def process_stream(lines, config, route=route_entry):
    """Route every line of the stream; return a Counter of outcomes."""
    stats = Counter()
    for line_number, line in enumerate(lines, 1):
        result = process_line(line, config, route, line_number)
        stats['failed' if result is None else result.status] += 1
    return stats


def configure_logging(level=None):
    logging.basicConfig(
        stream=sys.stderr,
        level=(level or os.environ.get('ACCESSLOG_LOG_LEVEL') or 'WARNING').upper(),
        format=LOG_FORMAT,
    )


def open_input():
    """Standard input as text, keeping undecodable bytes intact."""
    return io.TextIOWrapper(sys.stdin.buffer, encoding='utf-8',
                            errors='surrogateescape', newline='\n')


def main(argv=None):
    configure_logging()
    config = build_config(argv)
    logger.info('Routing access log into %s (suffix %r)',
                config.prefix, config.suffix)

    stats = process_stream(open_input(), config)

    logger.info('Done: %s', ', '.join(
        f'{status}={count}' for status, count in sorted(stats.items())))
    return 0


if __name__ == '__main__':
    sys.exit(main())
