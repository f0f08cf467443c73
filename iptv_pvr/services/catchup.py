"""
Catchup Service.
Derives catchup URL templates per vendor convention and resolves them
for a programme start time.
"""
import logging
import re
import time
from datetime import datetime, timezone
from typing import Optional

from iptv_pvr.config import Settings, get_settings
from iptv_pvr.models.channel import CatchupMode, Channel, StreamProperty
from iptv_pvr.models.epg import EpgEntry, EpgTag
from iptv_pvr.services.epg_store import EpgStore
from iptv_pvr.services.marker import parse_int
from iptv_pvr.services.stream_utils import redact_url

logger = logging.getLogger(__name__)

# scheme://host, directory, file name, query
FLUSSONIC_URL_PATTERN = re.compile(r"^(https?://[^/]+)((?:/[^/?]*)*)/([^/?]*)(\?.*)?$")

# scheme://host/[live/]user/password/stream_id[.ext]
XTREAM_CODES_URL_PATTERN = re.compile(
    r"^(https?://[^/]+)/(?:live/)?([^/?]+)/([^/?]+)/([^/?.]+)(?:\.[^/?]*)?(?:\?.*)?$"
)

# {name}, ${name} or {name:arg}
CATCHUP_TOKEN_PATTERN = re.compile(r"\$?\{([A-Za-z][A-Za-z-]*)(?::([^}]*))?\}")

START_TOKENS = {"utc", "start"}
END_TOKENS = {"utcend", "end"}
NOW_TOKENS = {"lutc", "now", "timestamp"}
DATE_FIELDS = set("YmdHMS")

SHIFT_QUERY = "utc={utc}&lutc={lutc}"


def _format_time(value: int, arg: Optional[str]) -> str:
    if not arg:
        return str(value)
    fmt = "".join(f"%{c}" if c in DATE_FIELDS else c.replace("%", "%%") for c in arg)
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime(fmt)


def _divisor(arg: Optional[str]) -> int:
    divisor = parse_int(arg) if arg else 1
    return divisor if divisor > 0 else 1


def format_catchup_url(
    template: str,
    start: int,
    duration: int,
    now: Optional[int] = None,
    catchup_id: str = "",
) -> str:
    """
    Substitute catchup tokens in a URL template.

    Tokens that are not recognised are left in place untouched.
    """
    now = int(time.time()) if now is None else now
    end = start + duration

    def replace(match: re.Match) -> str:
        name, arg = match.group(1), match.group(2)
        lowered = name.lower()

        if lowered in START_TOKENS:
            return _format_time(start, arg)
        if lowered in END_TOKENS:
            return _format_time(end, arg)
        if lowered in NOW_TOKENS:
            return _format_time(now, arg)
        if lowered == "duration":
            return str(duration // _divisor(arg))
        if lowered == "offset":
            return str((now - start) // _divisor(arg))
        if lowered == "catchup-id":
            return catchup_id
        if name in DATE_FIELDS and arg is None:
            return _format_time(start, name)
        return match.group(0)

    return CATCHUP_TOKEN_PATTERN.sub(replace, template)


def derive_catchup_template(channel: Channel, url: str) -> str:
    """Catchup template for the channel's mode, empty when none can be built."""
    mode = channel.catchup_mode
    source = channel.catchup_source

    if mode == CatchupMode.DEFAULT:
        if not source:
            return ""
        return source if "://" in source else url + source

    if mode == CatchupMode.APPEND:
        return url + source if source else ""

    if mode in (CatchupMode.SHIFT, CatchupMode.TIMESHIFT):
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{SHIFT_QUERY}"

    if mode == CatchupMode.FLUSSONIC:
        match = FLUSSONIC_URL_PATTERN.match(url)
        if not match:
            return ""
        host, directory, _, query = match.groups()
        extension = ".ts" if channel.catchup_ts_stream else ".m3u8"
        return f"{host}{directory}/index-{{utc}}-{{duration}}{extension}{query or ''}"

    if mode == CatchupMode.XTREAM_CODES:
        match = XTREAM_CODES_URL_PATTERN.match(url)
        if not match:
            return ""
        host, username, password, stream_id = match.groups()
        return (
            f"{host}/streaming/timeshift.php?username={username}&password={password}"
            f"&stream={stream_id}&start={{Y}}-{{m}}-{{d}}:{{H}}-{{M}}&duration={{duration:60}}"
        )

    if mode == CatchupMode.VOD:
        return source or url

    return ""


def configure_catchup_mode(channel: Channel):
    """
    Replace the channel's catchup source with a full URL template.

    Protocol options after '|' are kept off the template while it is built
    and put back afterwards. When nothing can be derived the mode is kept
    and playback falls back to the live stream.
    """
    if not channel.is_catchup_supported:
        return

    url, sep, options = channel.stream_url.partition("|")
    template = derive_catchup_template(channel, url)
    if template and sep and "|" not in template:
        template = f"{template}|{options}"

    if not template:
        logger.debug(
            f"No catchup template for '{channel.channel_name}' "
            f"({channel.catchup_mode.value}): {redact_url(channel.stream_url)}"
        )
    channel.catchup_source = template


def build_catchup_url(
    channel: Channel,
    start: int,
    duration: int,
    now: Optional[int] = None,
    catchup_id: str = "",
) -> str:
    """
    Catchup URL for a programme starting at start, empty when the channel
    has no usable catchup template.

    The channel's catchup correction and tvg-shift are added to start for
    every mode that consumes timestamps.
    """
    if not channel.is_catchup_supported:
        return ""

    template = channel.catchup_source
    if not template:
        url, sep, options = channel.stream_url.partition("|")
        template = derive_catchup_template(channel, url)
        if template and sep:
            template = f"{template}|{options}"
    if not template:
        return ""

    if channel.catchup_mode != CatchupMode.VOD:
        start += channel.catchup_correction_secs + channel.tvg_shift

    return format_catchup_url(template, start, duration, now, catchup_id)


def is_catchup_window_playable(
    channel: Channel,
    start: int,
    end: int,
    now: int,
    only_finished: bool = False,
    catchup_id: str = "",
) -> bool:
    """Whether a programme falls inside the channel's catchup window."""
    if not channel.is_catchup_supported:
        return False

    if channel.ignore_catchup_days:
        return bool(catchup_id)

    return (
        start < now
        and start >= now - channel.catchup_days_in_seconds
        and (not only_finished or end < now)
    )


class CatchupController:
    """
    Per-playback catchup state.

    The host resets the state before each playback request, then one of the
    process_* methods records the programme window the next URL is built for.
    """

    def __init__(self, epg: Optional[EpgStore] = None, settings: Optional[Settings] = None):
        self.epg = epg
        self.settings = settings or get_settings()
        self.reset_catchup_state()

    def reset_catchup_state(self):
        self._control_stream = False
        self._catchup_start_time = 0
        self._catchup_end_time = 0
        self._programme_catchup_id = ""

    @property
    def catchup_start_time(self) -> int:
        return self._catchup_start_time

    @property
    def catchup_end_time(self) -> int:
        return self._catchup_end_time

    def get_epg_entry(self, channel: Channel, at_time: int) -> Optional[EpgEntry]:
        if self.epg is None:
            return None
        return self.epg.get_epg_entry(channel, at_time)

    def process_channel_for_playback(self, channel: Channel, properties: dict[str, str]):
        """Live playback: no catchup window, the stream URL is used as is."""
        self.reset_catchup_state()

    def process_epg_tag_for_timeshifted_playback(
        self, tag: EpgTag, channel: Channel, properties: dict[str, str]
    ):
        """Play a programme from its start as a seekable live stream."""
        self._set_programme(tag, channel, begin_buffer=0, end_buffer=0)
        properties[StreamProperty.EPG_PLAYBACK_AS_LIVE.value] = "true"

    def process_epg_tag_for_video_playback(
        self, tag: EpgTag, channel: Channel, properties: dict[str, str]
    ):
        """Play a past programme as video, padded by the watch buffers."""
        self._set_programme(
            tag,
            channel,
            begin_buffer=self.settings.catchup_watch_epg_begin_buffer_mins * 60,
            end_buffer=self.settings.catchup_watch_epg_end_buffer_mins * 60,
        )
        properties[StreamProperty.EPG_PLAYBACK_AS_LIVE.value] = (
            "true" if self.settings.catchup_play_epg_as_live else "false"
        )

    def _set_programme(self, tag: EpgTag, channel: Channel, begin_buffer: int, end_buffer: int):
        self.reset_catchup_state()
        self._control_stream = True
        self._catchup_start_time = tag.start_time - begin_buffer
        self._catchup_end_time = tag.end_time + end_buffer

        entry = self.get_epg_entry(channel, tag.start_time)
        if entry is not None:
            self._programme_catchup_id = entry.catchup_id

    def get_catchup_url(self, channel: Channel, now: Optional[int] = None) -> str:
        """Resolved catchup URL for the recorded window, empty for live."""
        if not self._control_stream or not channel.is_catchup_supported:
            return ""

        now = int(time.time()) if now is None else now
        end_time = self._catchup_end_time
        if end_time <= self._catchup_start_time or end_time > now:
            end_time = max(now, self._catchup_start_time)
        duration = end_time - self._catchup_start_time

        url = build_catchup_url(
            channel,
            self._catchup_start_time,
            duration,
            now=now,
            catchup_id=self._programme_catchup_id,
        )
        if url:
            logger.debug(f"Catchup URL for '{channel.channel_name}': {redact_url(url)}")
        return url

    def process_stream_url(self, channel: Channel, now: Optional[int] = None) -> str:
        """URL to hand to the player: the catchup URL if any, else the live stream."""
        return self.get_catchup_url(channel, now) or channel.stream_url
