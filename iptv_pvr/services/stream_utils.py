"""
Stream helpers.
Builds the property map handed to the player and masks URLs for logs.
"""
import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from iptv_pvr.models.channel import Channel, StreamProperty

# Query keys whose values are treated as credentials
SENSITIVE_QUERY_KEYS = {
    "username", "user", "password", "pass", "pwd", "token", "auth",
    "key", "apikey", "api_key", "secret", "sig", "signature",
}

# Xtream style /live/<user>/<password>/<id>
XTREAM_PATH_PATTERN = re.compile(r"^(/(?:live|movie|series|timeshift)/)([^/]+)/([^/]+)/")

MIMETYPES = {
    ".m3u8": "application/x-mpegURL",
    ".m3u": "application/x-mpegURL",
    ".mpd": "application/dash+xml",
    ".ts": "video/mp2t",
    ".mp4": "video/mp4",
    ".mkv": "video/x-matroska",
    ".avi": "video/x-msvideo",
    ".mp3": "audio/mpeg",
    ".aac": "audio/aac",
}

REDACTED = "***"


def redact_url(url: str) -> str:
    """Mask userinfo, credential query values and Xtream path credentials."""
    if not url:
        return url

    base, sep, options = url.partition("|")
    try:
        parts = urlsplit(base)
    except ValueError:
        return REDACTED

    netloc = parts.netloc
    if "@" in netloc:
        netloc = f"{REDACTED}@{netloc.rsplit('@', 1)[1]}"

    path = XTREAM_PATH_PATTERN.sub(rf"\1{REDACTED}/{REDACTED}/", parts.path)

    query_items = []
    for item in parts.query.split("&") if parts.query else []:
        key, eq, _ = item.partition("=")
        if eq and key.lower() in SENSITIVE_QUERY_KEYS:
            item = f"{key}={REDACTED}"
        query_items.append(item)

    redacted = urlunsplit((parts.scheme, netloc, path, "&".join(query_items), parts.fragment))
    return f"{redacted}{sep}{options}" if sep else redacted


def guess_mimetype(url: str) -> str:
    """Mimetype from the URL path extension, empty when unknown."""
    path = urlsplit(url.partition("|")[0]).path.lower()
    for extension, mimetype in MIMETYPES.items():
        if path.endswith(extension):
            return mimetype
    return ""


def set_all_stream_properties(
    channel: Channel,
    url: str,
    is_live: bool,
    catchup_properties: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """
    Property map for playing a channel or a catchup URL.

    Channel properties from #KODIPROP / #EXTVLCOPT lines are passed through.
    Catchup properties are applied last and win over everything else.
    """
    properties = {
        StreamProperty.STREAM_URL.value: url,
        StreamProperty.IS_REALTIME_STREAM.value: "true" if is_live else "false",
    }
    properties.update(channel.properties)

    if not channel.has_property(StreamProperty.INPUTSTREAM) and not channel.has_property(StreamProperty.MIMETYPE):
        mimetype = guess_mimetype(url)
        if mimetype:
            properties[StreamProperty.MIMETYPE.value] = mimetype

    # The stream url and live flag describe this request, not the stored channel
    properties[StreamProperty.STREAM_URL.value] = url
    properties[StreamProperty.IS_REALTIME_STREAM.value] = "true" if is_live else "false"

    if catchup_properties:
        properties.update(catchup_properties)

    return properties
