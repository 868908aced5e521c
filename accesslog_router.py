"""Route access log entries into per-domain log files."""

import errno
import logging
import os
from collections import namedtuple

from accesslog_parser import (
    AccessLogError,
    encode_decimal,
    extract_timestamp,
    pad_leading_zeros,
    split_domain,
)

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = '/home/httpd'
DIRECTORY_MODE = 0o755
FILE_MODE = 0o644

ROUTED = 'routed'
DISCARDED = 'discarded'
REJECTED = 'rejected'
UNWRITABLE = 'unwritable'

RouterConfig = namedtuple(
    'RouterConfig', ['prefix', 'suffix', 'create_parents'],
    defaults=(DEFAULT_PREFIX, '', True),
)

ParsedEntry = namedtuple('ParsedEntry', ['domain', 'labels', 'timestamp', 'record'])

RouteResult = namedtuple(
    'RouteResult', ['status', 'domain', 'path', 'timestamp', 'error'],
    defaults=(None, None, None, None),
)


def _skip_spaces(line, start):
    pos = start
    while pos < len(line) and line[pos] == ' ':
        pos += 1
    return pos


def _find_space(line, start):
    pos = line.find(' ', start)
    return len(line) if pos == -1 else pos


def parse_entry(line):
    """Split a raw log line into domain, timestamp and stored record.

    Returns None when the line carries no routable domain. Timestamp
    errors propagate to the caller.
    """
    domain_start = _skip_spaces(line, 0)
    domain_end = _find_space(line, domain_start)
    log_start = _skip_spaces(line, domain_end)

    if domain_start >= domain_end or log_start >= len(line):
        return None

    domain = line[domain_start:domain_end]
    if '/' in domain or '\0' in domain:
        return None

    labels = split_domain(domain)
    if len(labels) < 2:
        return None

    timestamp = extract_timestamp(line[log_start:])
    return ParsedEntry(
        domain=domain,
        labels=labels,
        timestamp=timestamp,
        record=line[domain_start:] + '\n',
    )


def destination_directory(config, labels, timestamp):
    """Directory holding one month of logs for a second level domain."""
    return os.path.join(
        config.prefix,
        labels[-2] + '.' + labels[-1],
        'logs',
        pad_leading_zeros(encode_decimal(timestamp.year), 4) + '-' +
        pad_leading_zeros(encode_decimal(timestamp.month)) + config.suffix,
    )


def ensure_directory(path, create_parents=True):
    """Create path if missing; failures are left for the append to report."""
    try:
        if create_parents:
            os.makedirs(path, mode=DIRECTORY_MODE, exist_ok=True)
        else:
            os.mkdir(path, DIRECTORY_MODE)
    except OSError as e:
        if e.errno != errno.EEXIST:
            logger.debug('Cannot create %s: %s', path, e)


def append_line(path, data):
    """Append data to path with a single open/write/close cycle."""
    payload = data.encode('utf-8', 'surrogateescape')
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, FILE_MODE)
    try:
        view = memoryview(payload)
        while view:
            written = os.write(fd, view)
            view = view[written:]
    finally:
        os.close(fd)


def route_entry(line, config, ensure=ensure_directory, append=append_line):
    """Store one access log entry in its domain log.

    Never raises for problems with the line itself; the outcome is
    reported through the returned RouteResult.
    """
    try:
        entry = parse_entry(line)
    except AccessLogError as e:
        return RouteResult(REJECTED, error=e)

    if entry is None:
        return RouteResult(DISCARDED)

    log_dir = destination_directory(config, entry.labels, entry.timestamp)
    ensure(log_dir, config.create_parents)

    path = os.path.join(log_dir, entry.domain)
    try:
        append(path, entry.record)
    except OSError as e:
        return RouteResult(UNWRITABLE, entry.domain, path, entry.timestamp, e)

    return RouteResult(ROUTED, entry.domain, path, entry.timestamp)
