"""Access log parsing utilities."""

from collections import namedtuple

MONTHS = {
    'Jan': 1, 'Feb': 2, 'Mar': 3, 'Apr': 4, 'May': 5, 'Jun': 6,
    'Jul': 7, 'Aug': 8, 'Sep': 9, 'Oct': 10, 'Nov': 11, 'Dec': 12,
}

DIGITS = '0123456789'

# Date & time signature: [DD/Mon/YYYY:HH:MM:SS +off]
# Offsets of the fixed skeleton inside the 28 character signature.
SIGNATURE_LENGTH = 28
SIGNATURE_SKELETON = {0: '[', 12: ':', 15: ':', 18: ':', 21: ' ', 27: ']'}
DATE_SEPARATOR_OFFSETS = (3, 7)
DATE_SEPARATORS = '/-'
SIGNATURE_DELIMITERS = '[]/: '

Timestamp = namedtuple(
    'Timestamp', ['day', 'month', 'year', 'hour', 'minute', 'second', 'offset']
)


class AccessLogError(ValueError):
    """Base class for per-line access log errors."""

    kind = 'error'


class ParseError(AccessLogError):
    """A numeric field or month abbreviation could not be decoded."""

    kind = 'parse'


class TimestampError(AccessLogError):
    """The date & time signature is missing or has the wrong shape."""

    kind = 'timestamp'


class NoTimestampError(TimestampError):
    kind = 'no_timestamp'


class IncompleteTimestampError(TimestampError):
    kind = 'incomplete_timestamp'


class MalformedTimestampError(TimestampError):
    kind = 'malformed_timestamp'


def decode_decimal(text):
    """Decode a base 10 integer occupying the whole string."""
    digits = text[1:] if text[:1] in ('+', '-') else text
    if not digits or any(c not in DIGITS for c in digits):
        raise ParseError(f"Not an integer: '{text}'")
    return int(text)


def encode_decimal(value):
    """Encode an integer as a base 10 string."""
    return str(value)


def pad_leading_zeros(text, width=2):
    """Left-pad a numeric string with zeroes up to width characters.

    Strings whose first character is not a digit are returned unchanged.
    """
    if text and text[0] not in DIGITS:
        return text
    return text.rjust(width, '0')


def decode_month(abbrev):
    """Decode a three letter English month abbreviation (1-based)."""
    try:
        return MONTHS[abbrev]
    except KeyError:
        raise ParseError(f"Invalid month '{abbrev}'") from None


def split_on(text, delimiters, keep_empty=True):
    """Split text on any of the delimiter characters."""
    parts = []
    current = []
    for c in text:
        if c in delimiters:
            parts.append(''.join(current))
            current = []
        else:
            current.append(c)
    parts.append(''.join(current))
    if keep_empty:
        return parts
    return [p for p in parts if p]


def split_domain(domain):
    """Split a domain name into its labels, keeping empty ones."""
    return split_on(domain, '.', keep_empty=True)


def _signature_at(text, start):
    window = text[start:start + SIGNATURE_LENGTH]
    if len(window) < SIGNATURE_LENGTH or '\n' in window:
        return False
    for offset, expected in SIGNATURE_SKELETON.items():
        if window[offset] != expected:
            return False
    return all(window[offset] in DATE_SEPARATORS
               for offset in DATE_SEPARATOR_OFFSETS)


def find_signature(text):
    """Return the first date & time signature in text, or None."""
    start = text.find('[')
    while start != -1:
        if _signature_at(text, start):
            return text[start:start + SIGNATURE_LENGTH]
        start = text.find('[', start + 1)
    return None


def _signature_tokens(signature):
    chars = list(signature)
    for offset in DATE_SEPARATOR_OFFSETS:
        chars[offset] = '/'
    return split_on(''.join(chars), SIGNATURE_DELIMITERS, keep_empty=False)


def extract_timestamp(text):
    """Extract the Apache style date & time signature from a log entry.

    The signature may appear anywhere in text. Day, month and year may be
    separated by '/' (as Apache writes them) or '-'. Calendar validity is
    not checked; any value of the right shape is accepted.
    """
    signature = find_signature(text)
    if signature is None:
        raise NoTimestampError('Date & time not found')

    decoders = (decode_decimal, decode_month, decode_decimal, decode_decimal,
                decode_decimal, decode_decimal, decode_decimal)
    fields = []
    for pos, token in enumerate(_signature_tokens(signature)):
        if pos >= len(decoders):
            raise MalformedTimestampError(
                f"Invalid date & time format '{signature}'")
        fields.append(decoders[pos](token))

    if len(fields) < len(decoders):
        raise IncompleteTimestampError(
            f"Date & time not complete '{signature}'")

    return Timestamp(*fields)
