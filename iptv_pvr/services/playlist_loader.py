"""
Playlist Loader.
Reads an extended M3U playlist line by line into the channel, group,
provider and media stores.
"""
import logging
import time
from typing import Optional

from iptv_pvr.config import RefreshMode, Settings, get_settings
from iptv_pvr.models.channel import (
    Channel,
    ChannelGroup,
    M3UHeader,
    MediaEntry,
    StreamProperty,
)
from iptv_pvr.services.catchup import configure_catchup_mode
from iptv_pvr.services.channel_builder import (
    CATCHUP,
    CATCHUP_CORRECTION,
    CATCHUP_DAYS,
    CATCHUP_SOURCE,
    CATCHUP_TYPE,
    TVG_INFO_SHIFT_MARKER,
    ChannelBuilder,
    split_extinf,
)
from iptv_pvr.services.channel_groups import ChannelGroups
from iptv_pvr.services.channels import Channels
from iptv_pvr.services.file_fetcher import FileFetcher
from iptv_pvr.services.host_client import HostClient
from iptv_pvr.services.marker import hours_to_seconds, read_attribute, read_marker_value
from iptv_pvr.services.media import Media
from iptv_pvr.services.providers import Providers
from iptv_pvr.services.stream_utils import redact_url

logger = logging.getLogger(__name__)

M3U_CACHE_NAME = "iptv.m3u.cache"

# Line markers
M3U_START_MARKER = "#EXTM3U"
M3U_INFO_MARKER = "#EXTINF:"
KODIPROP_MARKER = "#KODIPROP:"
EXTVLCOPT_MARKER = "#EXTVLCOPT:"
EXTVLCOPT_DASH_MARKER = "#EXTVLCOPT--"
M3U_GROUP_MARKER = "#EXTGRP:"
PLAYLIST_TYPE_MARKER = "#EXT-X-PLAYLIST-TYPE:"

# Header keys
TVG_URL_MARKER = "x-tvg-url"
TVG_URL_OTHER_MARKER = "url-tvg"
XEEV_CATCHUP_HEADER = "xc"

BYTE_ORDER_MARK = "\ufeff"
GROUP_NAME_SEPARATOR = ";"

# Properties accepted per marker, None = any key
ALLOWED_PROPERTIES = {
    KODIPROP_MARKER: None,
    EXTVLCOPT_MARKER: {
        StreamProperty.HTTP_USER_AGENT.value,
        StreamProperty.HTTP_REFERRER.value,
        StreamProperty.PROGRAM.value,
    },
    EXTVLCOPT_DASH_MARKER: {StreamProperty.HTTP_RECONNECT.value},
}
INPUTSTREAM_ALIASES = {"inputstreamaddon", "inputstreamclass"}


class PlaylistLoader:
    """Load a playlist into stores owned by the caller."""

    def __init__(
        self,
        channels: Channels,
        channel_groups: ChannelGroups,
        providers: Providers,
        media: Media,
        settings: Optional[Settings] = None,
        fetcher: Optional[FileFetcher] = None,
        client: Optional[HostClient] = None,
    ):
        self.channels = channels
        self.channel_groups = channel_groups
        self.providers = providers
        self.media = media
        self.settings = settings or get_settings()
        self.fetcher = fetcher or FileFetcher()
        self.client = client or HostClient()
        self.header = M3UHeader()
        self.builder = ChannelBuilder(providers, self.settings, self.header)

    @property
    def tvg_url(self) -> str:
        """EPG location announced in the playlist header."""
        return self.header.tvg_url

    async def fetch_playlist(self) -> Optional[str]:
        """Download or read the configured playlist, None on failure."""
        location = self.settings.m3u_location
        if not location:
            logger.error("Playlist location is not configured, channels not loaded")
            return None

        # A cached playlist would hide the changes a refresh is meant to pick up
        use_cache = self.settings.use_m3u_cache and self.settings.m3u_refresh_mode == RefreshMode.DISABLED

        content = await self.fetcher.get_cached_file_contents(M3U_CACHE_NAME, location, use_cache)
        if content is None:
            logger.error(f"Unable to load playlist '{redact_url(location)}': file is missing or unreadable")
        return content

    def _parse_header(self, line: str):
        header = M3UHeader(catchup_correction_secs=self.settings.catchup_correction_secs)

        tvg_shift = read_attribute(line, TVG_INFO_SHIFT_MARKER)
        if tvg_shift:
            header.epg_time_shift = hours_to_seconds(tvg_shift)

        catchup_correction = read_attribute(line, CATCHUP_CORRECTION)
        if catchup_correction:
            header.catchup_correction_secs = hours_to_seconds(catchup_correction)

        header.catchup = read_attribute(line, CATCHUP)
        header.xeev_catchup = header.catchup == XEEV_CATCHUP_HEADER
        if not header.catchup:
            header.catchup = read_attribute(line, CATCHUP_TYPE)
        header.catchup_days = read_attribute(line, CATCHUP_DAYS)
        header.catchup_source = read_attribute(line, CATCHUP_SOURCE)

        header.tvg_url = read_attribute(line, TVG_URL_MARKER)
        if not header.tvg_url:
            header.tvg_url = read_attribute(line, TVG_URL_OTHER_MARKER)

        self._set_header(header)

    def _set_header(self, header: M3UHeader):
        self.header = header
        self.builder.header = header

    def _parse_and_add_channel_groups(self, group_names: str, group_ids: list[int], is_radio: bool):
        """Register each ';'-separated group name and collect the allowed ids."""
        for group_name in group_names.split(GROUP_NAME_SEPARATOR):
            group_name = group_name.strip()
            if not group_name:
                continue

            group = ChannelGroup(group_name=group_name, is_radio=is_radio)
            if self.channel_groups.check_channel_group_allowed(group):
                group_id = self.channel_groups.add_channel_group(group)
                if group_id not in group_ids:
                    group_ids.append(group_id)

    def _parse_single_property(self, line: str, channel: Channel, marker: str):
        value = read_marker_value(line, marker)
        key, eq, prop_value = value.partition("=")
        if not eq:
            return

        key = key.strip().lower()
        allowed = ALLOWED_PROPERTIES[marker]
        add_property = allowed is None or key in allowed
        if marker == KODIPROP_MARKER and key in INPUTSTREAM_ALIASES:
            key = StreamProperty.INPUTSTREAM.value

        if add_property:
            channel.add_property(key, prop_value)

        logger.debug(f"Found {marker} property '{key}' value '{prop_value}' added: {add_property}")

    def _is_media_line(self, line: str) -> bool:
        return (
            self.settings.media_enabled
            and self.settings.show_vod_as_recordings
            and self.builder.is_media_line(line)
        )

    def load_playlist_content(self, content: str) -> bool:
        """
        Parse playlist text into the stores.

        Per-entry defects are skipped; parsing never aborts part way. The
        stores are expected to be empty, see reload_playlist_content.
        """
        started = time.monotonic()
        self._set_header(M3UHeader(catchup_correction_secs=self.settings.catchup_correction_secs))

        is_first_line = True
        is_real_time = True
        is_media_entry = False
        channel_had_groups = False
        group_ids: list[int] = []
        scratch_channel = Channel()
        scratch_media = MediaEntry()

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            if is_first_line:
                is_first_line = False
                line = line.lstrip(BYTE_ORDER_MARK)

                if line.startswith(M3U_START_MARKER):
                    self._parse_header(line)
                    continue

                logger.warning(f"Playlist is missing the {M3U_START_MARKER} header, parsing it anyway")

            if line.startswith(M3U_INFO_MARKER):
                if split_extinf(line) is None:
                    logger.debug(f"Ignoring malformed #EXTINF line: '{line}'")
                    continue

                scratch_channel.channel_number = self.channels.get_current_channel_number()
                group_ids = []
                is_media_entry = self._is_media_line(line)

                group_names = self.builder.parse_into_channel(
                    line,
                    scratch_channel,
                    scratch_media,
                    self.header.epg_time_shift,
                    self.header.catchup_correction_secs,
                    self.header.xeev_catchup,
                )
                if group_names:
                    self._parse_and_add_channel_groups(group_names, group_ids, scratch_channel.is_radio)
                    channel_had_groups = True

            elif line.startswith(KODIPROP_MARKER):
                self._parse_single_property(line, scratch_channel, KODIPROP_MARKER)

            elif line.startswith(EXTVLCOPT_MARKER):
                self._parse_single_property(line, scratch_channel, EXTVLCOPT_MARKER)

            elif line.startswith(EXTVLCOPT_DASH_MARKER):
                self._parse_single_property(line, scratch_channel, EXTVLCOPT_DASH_MARKER)

            elif line.startswith(M3U_GROUP_MARKER):
                group_names = read_marker_value(line, M3U_GROUP_MARKER)
                if group_names:
                    self._parse_and_add_channel_groups(group_names, group_ids, scratch_channel.is_radio)
                    channel_had_groups = True

            elif line.startswith(PLAYLIST_TYPE_MARKER):
                if read_marker_value(line, PLAYLIST_TYPE_MARKER) == "VOD":
                    is_real_time = False

            elif not line.startswith("#"):
                self._commit_entry(
                    line, scratch_channel, scratch_media, group_ids,
                    channel_had_groups, is_real_time, is_media_entry,
                )
                scratch_channel = Channel()
                scratch_media = MediaEntry()
                group_ids = []
                is_real_time = True
                is_media_entry = False
                channel_had_groups = False

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Playlist loaded in {elapsed_ms} ms")

        if self.channels.get_channels_amount() == 0 and self.media.get_num_media() == 0:
            logger.error("Unable to load channels or media from the playlist")

        logger.info(f"Loaded {self.channels.get_channels_amount()} channels")
        logger.info(f"Loaded {self.channel_groups.get_channel_groups_amount()} channel groups")
        logger.info(f"Loaded {self.providers.get_num_providers()} providers")
        logger.info(f"Loaded {self.media.get_num_media()} media items")
        return True

    def _commit_entry(
        self,
        url: str,
        scratch_channel: Channel,
        scratch_media: MediaEntry,
        group_ids: list[int],
        channel_had_groups: bool,
        is_real_time: bool,
        is_media_entry: bool,
    ):
        logger.debug(f"Adding '{scratch_channel.channel_name}' with URL: {redact_url(url)}")

        show_as_channel = (
            is_real_time
            or not self.settings.media_enabled
            or not self.settings.show_vod_as_recordings
        )
        if show_as_channel and not is_media_entry:
            channel = scratch_channel.model_copy(deep=True)
            channel.add_property(StreamProperty.IS_REALTIME_STREAM, "true")
            channel.stream_url = url
            configure_catchup_mode(channel)

            if not self.channels.add_channel(channel, group_ids, self.channel_groups, channel_had_groups):
                logger.debug(
                    f"Not adding channel '{channel.channel_name}': "
                    f"{'radio' if channel.is_radio else 'tv'} channel has no allowed group "
                    f"or its medium is disabled"
                )
        else:
            entry = scratch_media.model_copy(deep=True)
            entry.update_from(scratch_channel)
            entry.stream_url = url

            if not self.media.add_media_entry(entry):
                logger.debug(
                    f"Not adding media entry '{entry.title}': an entry with the same unique id exists"
                )

    def clear_stores(self):
        self.channels.clear()
        self.channel_groups.clear()
        self.providers.clear()
        self.media.clear()

    def reload_playlist_content(self, content: Optional[str]) -> bool:
        """
        Rebuild all stores from already fetched content.

        The host is notified after a successful load; a missing playlist
        marks channels and groups as failed instead.
        """
        self.clear_stores()

        if content is not None and self.load_playlist_content(content):
            self.client.trigger_channel_update()
            self.client.trigger_channel_groups_update()
            self.client.trigger_providers_update()
            self.client.trigger_recording_update()
            return True

        self.channels.channels_load_failed()
        self.channel_groups.channel_groups_load_failed()
        return False

    async def load_playlist(self) -> bool:
        """Fetch and parse the playlist into the (empty) stores."""
        content = await self.fetch_playlist()
        if content is None:
            return False
        return self.load_playlist_content(content)

    async def reload_playlist(self) -> bool:
        """Fetch, clear and rebuild."""
        content = await self.fetch_playlist()
        return self.reload_playlist_content(content)
