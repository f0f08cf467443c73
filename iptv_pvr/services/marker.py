"""
Marker reading helpers for playlist lines.

A marker is either a line directive (``#KODIPROP:``) or an attribute key
inside an ``#EXTINF`` line (``tvg-id``). Values are quoted or run to the
next space.
"""
import re

NUMBER_PREFIX_PATTERN = re.compile(r'\s*([+-]?\d+)')
DECIMAL_PREFIX_PATTERN = re.compile(r'\s*([+-]?(?:\d+\.?\d*|\.\d+))')


def read_marker_value(line: str, marker_name: str) -> str:
    """
    Return the value following the first occurrence of marker_name.

    A value starting with a quote runs to the closing quote (or the end of
    the line when the quote is never closed), otherwise to the next space.
    An absent marker, or one with nothing after it, gives an empty string.
    """
    marker_start = line.find(marker_name)
    if marker_start < 0:
        return ""

    marker_start += len(marker_name)
    if marker_start >= len(line):
        return ""

    terminator = ' '
    if line[marker_start] == '"':
        terminator = '"'
        marker_start += 1

    marker_end = line.find(terminator, marker_start)
    if marker_end < 0:
        marker_end = len(line)
    return line[marker_start:marker_end]


def _attribute_pattern(key: str) -> re.Pattern:
    return re.compile(r'(?:^|[\s,])' + re.escape(key) + '=')


def read_attribute(info_line: str, key: str) -> str:
    """
    Read ``key="value"`` or ``key=value`` from an attribute section.

    Unlike read_marker_value the key must start an attribute, so
    ``catchup`` never matches inside ``catchup-days`` and ``media`` never
    matches inside ``social-media``.
    """
    match = _attribute_pattern(key).search(info_line)
    if not match:
        return ""
    return read_marker_value(info_line[match.end() - 1:], '=')


def has_attribute(info_line: str, key: str) -> bool:
    return _attribute_pattern(key).search(info_line) is not None


def parse_int(value: str) -> int:
    """Leading integer of value, 0 when there is none."""
    match = NUMBER_PREFIX_PATTERN.match(value or "")
    return int(match.group(1)) if match else 0


def parse_float(value: str) -> float:
    """Leading decimal of value, 0.0 when there is none."""
    match = DECIMAL_PREFIX_PATTERN.match(value or "")
    return float(match.group(1)) if match else 0.0


def hours_to_seconds(value: str) -> int:
    """Decimal hours to whole seconds, rounded toward zero."""
    return int(parse_float(value) * 3600.0)
