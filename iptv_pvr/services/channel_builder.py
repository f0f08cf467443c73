"""
Channel builder.
Turns one #EXTINF line into channel, provider and media fields.
"""
import logging
import os
from typing import Optional

from iptv_pvr.config import PathType, Settings, get_settings
from iptv_pvr.models.channel import (
    IGNORE_CATCHUP_DAYS,
    CatchupMode,
    Channel,
    M3UHeader,
    MediaEntry,
)
from iptv_pvr.services.marker import (
    has_attribute,
    hours_to_seconds,
    parse_int,
    read_attribute,
)
from iptv_pvr.services.providers import (
    Providers,
    parse_provider_type,
    split_provider_tokens,
)

logger = logging.getLogger(__name__)

# #EXTINF attribute keys
TVG_INFO_ID_MARKER = "tvg-id"
TVG_INFO_ID_MARKER_UC = "tvg-ID"
TVG_INFO_NAME_MARKER = "tvg-name"
TVG_INFO_LOGO_MARKER = "tvg-logo"
TVG_INFO_CHNO_MARKER = "tvg-chno"
CHANNEL_NUMBER_MARKER = "channel-number"
TVG_INFO_SHIFT_MARKER = "tvg-shift"
TVG_INFO_REC = "tvg-rec"
RADIO_MARKER = "radio"
GROUP_NAME_MARKER = "group-title"
CATCHUP = "catchup"
CATCHUP_TYPE = "catchup-type"
CATCHUP_DAYS = "catchup-days"
CATCHUP_SOURCE = "catchup-source"
CATCHUP_SIPTV = "timeshift"
CATCHUP_SIPTV_ALT = "catchup-siptv"
CATCHUP_CORRECTION = "catchup-correction"
PROVIDER = "provider"
PROVIDER_TYPE = "provider-type"
PROVIDER_LOGO = "provider-logo"
PROVIDER_COUNTRIES = "provider-countries"
PROVIDER_LANGUAGES = "provider-languages"
MEDIA = "media"
MEDIA_DIR = "media-dir"
MEDIA_SIZE = "media-size"

# Normalised catchup token -> mode
CATCHUP_MODE_TOKENS = {
    "default": CatchupMode.DEFAULT,
    "append": CatchupMode.APPEND,
    "shift": CatchupMode.SHIFT,
    "flussonic": CatchupMode.FLUSSONIC,
    "flussonic-hls": CatchupMode.FLUSSONIC,
    "flussonic-ts": CatchupMode.FLUSSONIC,
    "fs": CatchupMode.FLUSSONIC,
    "xc": CatchupMode.XTREAM_CODES,
    "vod": CatchupMode.VOD,
}
CATCHUP_TS_TOKENS = {"flussonic-ts", "fs"}

XEEV_CATCHUP_NAME_PREFIXES = ("* ", "[+] ")

LOGO_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg")


def find_name_comma(line: str) -> int:
    """
    Index of the comma that starts the display name, -1 if there is none.

    Commas may sit inside quoted attribute values, so when the text after
    the last quote starts with a comma that comma is used instead of the
    last one on the line.
    """
    comma_index = line.rfind(',')

    last_quote_index = line.rfind('"')
    if last_quote_index >= 0:
        possible_name = line[last_quote_index + 1:]
        if possible_name.strip().startswith(','):
            comma_index = last_quote_index + 1 + possible_name.find(',')

    return comma_index


def split_extinf(line: str) -> Optional[tuple[str, str]]:
    """Split an #EXTINF line into (attribute section, display name)."""
    colon_index = line.find(':')
    comma_index = find_name_comma(line)
    if colon_index < 0 or comma_index < 0 or comma_index <= colon_index:
        return None
    return line[colon_index + 1:comma_index], line[comma_index + 1:].strip()


def resolve_icon_path(tvg_logo: str, channel_name: str, settings: Settings) -> str:
    """Icon from tvg-logo, or from the channel name under the logo path."""
    if settings.logo_path_type == PathType.LOCAL and settings.use_local_logos_only:
        tvg_logo = ""

    icon_path = tvg_logo
    if not icon_path and settings.logo_path:
        icon_path = channel_name

    if icon_path and settings.logo_path and "://" not in icon_path and not os.path.isabs(icon_path):
        icon_path = f"{settings.logo_path.rstrip('/')}/{icon_path}"
        if not icon_path.lower().endswith(LOGO_EXTENSIONS):
            icon_path += ".png"

    return icon_path


class ChannelBuilder:
    """Parse #EXTINF lines using the playlist header defaults."""

    def __init__(self, providers: Providers, settings: Optional[Settings] = None,
                 header: Optional[M3UHeader] = None):
        self.providers = providers
        self.settings = settings or get_settings()
        self.header = header or M3UHeader()

    @staticmethod
    def is_media_line(line: str) -> bool:
        """True when the #EXTINF attributes mark an on-demand entry."""
        parts = split_extinf(line)
        info_line = parts[0] if parts else line
        return any(has_attribute(info_line, key) for key in (MEDIA, MEDIA_DIR, MEDIA_SIZE))

    def parse_into_channel(
        self,
        line: str,
        channel: Channel,
        media_entry: MediaEntry,
        epg_time_shift: int,
        catchup_correction_secs: int,
        xeev_catchup: bool,
    ) -> str:
        """
        Populate channel and media_entry from an #EXTINF line.

        Returns the raw group-title value (possibly several names separated
        by ';'). A line without a colon or a name comma is left alone and
        gives an empty string.
        """
        parts = split_extinf(line)
        if parts is None:
            logger.debug(f"Ignoring malformed #EXTINF line: '{line}'")
            return ""

        info_line, channel_name = parts
        channel.channel_name = channel_name

        tvg_id = read_attribute(info_line, TVG_INFO_ID_MARKER)
        if not tvg_id:
            tvg_id = read_attribute(info_line, TVG_INFO_ID_MARKER_UC)
        tvg_name = read_attribute(info_line, TVG_INFO_NAME_MARKER)
        tvg_logo = read_attribute(info_line, TVG_INFO_LOGO_MARKER)
        channel_number = read_attribute(info_line, TVG_INFO_CHNO_MARKER)
        if not channel_number:
            channel_number = read_attribute(info_line, CHANNEL_NUMBER_MARKER)
        radio = read_attribute(info_line, RADIO_MARKER)
        tvg_shift = read_attribute(info_line, TVG_INFO_SHIFT_MARKER)
        tvg_rec = read_attribute(info_line, TVG_INFO_REC)
        catchup = read_attribute(info_line, CATCHUP)
        if not catchup:
            catchup = read_attribute(info_line, CATCHUP_TYPE)
        if not catchup:
            catchup = self.header.catchup
        catchup_days = read_attribute(info_line, CATCHUP_DAYS)
        catchup_source = read_attribute(info_line, CATCHUP_SOURCE)
        if not catchup_source:
            catchup_source = self.header.catchup_source
        catchup_siptv = read_attribute(info_line, CATCHUP_SIPTV)
        if not catchup_siptv:
            catchup_siptv = read_attribute(info_line, CATCHUP_SIPTV_ALT)
        catchup_correction = read_attribute(info_line, CATCHUP_CORRECTION)

        # Identity
        if tvg_id:
            channel.tvg_id = tvg_id
        else:
            channel.set_synthetic_tvg_id(str(parse_int(info_line)))
        channel.tvg_name = tvg_name
        channel.is_radio = radio.lower() == "true"

        # Numbering
        if channel_number and not self.settings.number_channels_by_m3u_order_only:
            number, dot, sub_number = channel_number.partition('.')
            channel.channel_number = parse_int(number)
            if dot:
                channel.sub_channel_number = parse_int(sub_number)

        # Timing
        channel.tvg_shift = hours_to_seconds(tvg_shift) if tvg_shift else epg_time_shift
        channel.catchup_correction_secs = (
            hours_to_seconds(catchup_correction) if catchup_correction else catchup_correction_secs
        )

        # Catchup mode
        token = catchup.lower()
        mode = CATCHUP_MODE_TOKENS.get(token)
        if mode is not None:
            channel.has_catchup = True
            channel.catchup_mode = mode
            channel.catchup_ts_stream = token in CATCHUP_TS_TOKENS

        if not channel.has_catchup and xeev_catchup and channel_name.startswith(XEEV_CATCHUP_NAME_PREFIXES):
            channel.has_catchup = True
            channel.catchup_mode = CatchupMode.XTREAM_CODES

        channel.catchup_source = catchup_source

        siptv_timeshift_days = parse_int(catchup_siptv) if catchup_siptv else 0
        if tvg_rec and siptv_timeshift_days == 0:
            siptv_timeshift_days = parse_int(tvg_rec)

        # Catchup days
        if catchup_days:
            channel.catchup_days = parse_int(catchup_days)
        elif self.header.catchup_days:
            channel.catchup_days = parse_int(self.header.catchup_days)
        elif channel.catchup_mode == CatchupMode.VOD:
            channel.catchup_days = IGNORE_CATCHUP_DAYS
        elif siptv_timeshift_days > 0:
            channel.catchup_days = siptv_timeshift_days
        else:
            channel.catchup_days = self.settings.catchup_days

        # Legacy siptv timeshift="N" behaves like catchup="shift" with N days
        if not channel.has_catchup and siptv_timeshift_days > 0:
            channel.has_catchup = True
            channel.catchup_mode = CatchupMode.TIMESHIFT

        channel.icon_path = resolve_icon_path(tvg_logo, channel_name, self.settings)

        self._parse_provider(info_line, channel)

        media_dir = read_attribute(info_line, MEDIA_DIR)
        if media_dir:
            media_entry.directory = media_dir
        media_size = read_attribute(info_line, MEDIA_SIZE)
        if media_size:
            media_entry.size_in_bytes = parse_int(media_size)

        return read_attribute(info_line, GROUP_NAME_MARKER)

    def _parse_provider(self, info_line: str, channel: Channel):
        provider_name = read_attribute(info_line, PROVIDER)
        if not provider_name and self.settings.has_default_provider_name:
            provider_name = self.settings.default_provider_name

        provider = self.providers.add_provider(provider_name)
        if provider is None:
            return

        provider_type = read_attribute(info_line, PROVIDER_TYPE)
        if provider_type:
            provider.type = parse_provider_type(provider_type)

        provider_logo = read_attribute(info_line, PROVIDER_LOGO)
        if provider_logo:
            provider.icon_path = provider_logo

        countries = read_attribute(info_line, PROVIDER_COUNTRIES)
        if countries:
            provider.countries = split_provider_tokens(countries)

        languages = read_attribute(info_line, PROVIDER_LANGUAGES)
        if languages:
            provider.languages = split_provider_tokens(languages)

        channel.provider_unique_id = provider.unique_id
