"""
IPTV data service.
Owns the channel, group, provider, media and EPG stores and serves
snapshots of them to the API under a single lock.
"""
import asyncio
import logging
import time
from typing import Any, Optional

from pydantic import ValidationError

from iptv_pvr.config import Settings, get_settings
from iptv_pvr.models.channel import (
    Channel,
    ChannelGroup,
    MediaEntry,
    Provider,
    SignalStatus,
    StreamProperty,
)
from iptv_pvr.models.epg import EpgEntry, EpgTag
from iptv_pvr.services.catchup import CatchupController, is_catchup_window_playable
from iptv_pvr.services.channel_groups import ChannelGroups
from iptv_pvr.services.channels import Channels
from iptv_pvr.services.epg_store import EpgStore
from iptv_pvr.services.file_fetcher import FileFetcher
from iptv_pvr.services.host_client import HostClient
from iptv_pvr.services.media import Media
from iptv_pvr.services.playlist_loader import PlaylistLoader
from iptv_pvr.services.providers import Providers
from iptv_pvr.services.stream_utils import redact_url, set_all_stream_properties

logger = logging.getLogger(__name__)

EPG_CACHE_NAME = "xmltv.xml.cache"
BACKEND_NAME = "IPTV PVR"


class IptvData:
    """Aggregate of all loaded data."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[FileFetcher] = None,
        client: Optional[HostClient] = None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher or FileFetcher()
        self.client = client or HostClient()

        self.channels = Channels(self.settings)
        self.channel_groups = ChannelGroups(self.settings)
        self.providers = Providers()
        self.media = Media()
        self.epg = EpgStore(self.settings)
        self.loader = PlaylistLoader(
            self.channels,
            self.channel_groups,
            self.providers,
            self.media,
            settings=self.settings,
            fetcher=self.fetcher,
            client=self.client,
        )
        self.catchup = CatchupController(self.epg, self.settings)

        self._lock = asyncio.Lock()
        self._reload_requested = False
        self._last_reload: Optional[float] = None

    # Loading

    async def _fetch_epg(self) -> Optional[str]:
        location = self.settings.epg_location or self.loader.tvg_url
        if not location:
            logger.info("No EPG location configured or announced by the playlist")
            return None
        return await self.fetcher.get_cached_file_contents(
            EPG_CACHE_NAME, location, self.settings.use_epg_cache
        )

    async def reload_playlist(self) -> bool:
        """Fetch the playlist outside the lock, then rebuild the stores under it."""
        content = await self.loader.fetch_playlist()
        async with self._lock:
            loaded = self.loader.reload_playlist_content(content)
            self._last_reload = time.time()
        return loaded

    async def reload_epg(self) -> bool:
        content = await self._fetch_epg()
        async with self._lock:
            self.epg.clear()
            if content is None:
                return False
            return self.epg.load_epg_content(content)

    async def reload(self) -> bool:
        """Reload playlist and EPG; the result reflects the playlist."""
        loaded = await self.reload_playlist()
        await self.reload_epg()
        self._reload_requested = False
        return loaded

    def request_reload(self):
        self._reload_requested = True

    @property
    def reload_requested(self) -> bool:
        return self._reload_requested

    async def set_setting(self, name: str, value: Any) -> bool:
        """Change a setting at runtime and flag a reload for the refresh worker."""
        if name not in Settings.model_fields:
            logger.warning(f"Ignoring unknown setting '{name}'")
            return False

        async with self._lock:
            try:
                setattr(self.settings, name, value)
            except ValidationError as e:
                logger.warning(f"Rejecting value for setting '{name}': {e.errors()[0]['msg']}")
                return False
            self.request_reload()
        logger.info(f"Setting '{name}' changed, reload scheduled")
        return True

    # Backend

    def get_backend_name(self) -> str:
        return BACKEND_NAME

    def get_backend_version(self) -> str:
        return self.settings.app_version

    def get_signal_status(self, channel_uid: int) -> SignalStatus:
        return SignalStatus()

    async def get_stats(self) -> dict:
        async with self._lock:
            return {
                "channels": self.channels.get_channels_amount(),
                "channel_groups": self.channel_groups.get_channel_groups_amount(),
                "providers": self.providers.get_num_providers(),
                "media": self.media.get_num_media(),
                "epg_channels": self.epg.channel_count,
                "epg_programmes": self.epg.programme_count,
                "channels_load_failed": self.channels.load_failed,
                "last_reload": self._last_reload,
            }

    # Providers

    async def get_providers_amount(self) -> int:
        async with self._lock:
            return self.providers.get_num_providers()

    async def get_providers(self) -> list[Provider]:
        async with self._lock:
            providers = self.providers.get_providers()
        logger.debug(f"Providers available: {len(providers)}")
        return providers

    # Channels

    async def get_channels_amount(self) -> int:
        async with self._lock:
            return self.channels.get_channels_amount()

    async def get_channels(self, radio: Optional[bool] = None) -> list[Channel]:
        async with self._lock:
            return self.channels.get_channels(radio)

    async def get_channel(self, unique_id: int) -> Optional[Channel]:
        async with self._lock:
            return self.channels.get_channel(unique_id)

    async def get_channel_stream_properties(self, unique_id: int) -> Optional[dict[str, str]]:
        """Property map for live playback, None for an unknown channel."""
        catchup_properties: dict[str, str] = {}
        async with self._lock:
            channel = self.channels.get_channel(unique_id)
            if channel is None:
                return None

            self.catchup.process_channel_for_playback(channel, catchup_properties)
            stream_url = self.catchup.process_stream_url(channel)

        properties = set_all_stream_properties(channel, stream_url, True, catchup_properties)
        logger.info(f"Live stream URL: {redact_url(stream_url)}")
        return properties

    # Channel groups

    async def get_channel_groups_amount(self) -> int:
        async with self._lock:
            return self.channel_groups.get_channel_groups_amount()

    async def get_channel_groups(self, radio: bool) -> list[ChannelGroup]:
        async with self._lock:
            return self.channel_groups.get_channel_groups(radio)

    async def get_channel_group_members(self, group_name: str, radio: bool) -> list[Channel]:
        async with self._lock:
            members = self.channel_groups.get_channel_group_members(group_name, radio)
            return [c for c in (self.channels.get_channel(uid) for uid in members) if c is not None]

    # EPG

    async def get_epg_for_channel(self, unique_id: int, start: int, end: int) -> list[EpgEntry]:
        async with self._lock:
            channel = self.channels.get_channel(unique_id)
            if channel is None:
                return []
            return self.epg.get_epg_for_channel(channel, start, end)

    async def is_epg_tag_playable(self, tag: EpgTag, now: Optional[int] = None) -> Optional[bool]:
        """
        Whether the tag can be played as catchup.

        Returns None when catchup is disabled altogether.
        """
        if not self.settings.catchup_enabled:
            return None

        now = int(time.time()) if now is None else now
        async with self._lock:
            channel = self.channels.get_channel(tag.unique_channel_id)
            if channel is None:
                return False

            catchup_id = ""
            if channel.ignore_catchup_days:
                entry = self.epg.get_epg_entry(channel, tag.start_time)
                if entry is not None:
                    catchup_id = entry.catchup_id

        return is_catchup_window_playable(
            channel,
            tag.start_time,
            tag.end_time,
            now,
            only_finished=self.settings.catchup_only_on_finished_programmes,
            catchup_id=catchup_id,
        )

    async def get_epg_tag_stream_properties(self, tag: EpgTag) -> Optional[dict[str, str]]:
        """Property map for playing a guide entry, None when no catchup URL results."""
        catchup_properties: dict[str, str] = {}
        async with self._lock:
            channel = self.channels.get_channel(tag.unique_channel_id)
            if channel is None:
                return None

            if self.settings.catchup_play_epg_as_live and channel.catchup_supports_timeshifting:
                self.catchup.process_epg_tag_for_timeshifted_playback(tag, channel, catchup_properties)
            else:
                self.catchup.reset_catchup_state()
                self.catchup.process_epg_tag_for_video_playback(tag, channel, catchup_properties)
            catchup_url = self.catchup.get_catchup_url(channel)

        if not catchup_url:
            return None

        logger.info(f"EPG catchup URL: {redact_url(catchup_url)}")
        return set_all_stream_properties(channel, catchup_url, False, catchup_properties)

    # Recordings (media)

    async def get_recordings_amount(self, deleted: bool = False) -> int:
        if deleted:
            return 0
        async with self._lock:
            return self.media.get_num_media()

    async def get_recordings(self, deleted: bool = False) -> list[MediaEntry]:
        if deleted:
            return []
        async with self._lock:
            media = self.media.get_media()
        logger.debug(f"Media available: {len(media)}")
        return media

    async def get_recording_stream_properties(self, unique_id: int) -> Optional[dict[str, str]]:
        async with self._lock:
            url = self.media.get_media_entry_url(unique_id)
        if not url:
            return None
        return {StreamProperty.STREAM_URL.value: url}


# Singleton
_iptv_data: Optional[IptvData] = None


def get_iptv_data() -> IptvData:
    """Get or create IPTV data singleton."""
    global _iptv_data
    if _iptv_data is None:
        _iptv_data = IptvData()
    return _iptv_data
