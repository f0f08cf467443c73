"""
Channel store.
Assigns unique ids and channel numbers and records group membership.
"""
import logging
from typing import Optional

from iptv_pvr.config import Settings, get_settings
from iptv_pvr.models.channel import Channel
from iptv_pvr.services.channel_groups import ChannelGroups

logger = logging.getLogger(__name__)

UNIQUE_ID_MASK = 0x7FFFFFFF


def generate_unique_id(text: str) -> int:
    """Stable positive 31-bit id from a string (djb2 over the UTF-8 bytes)."""
    value = 0
    for byte in text.encode("utf-8"):
        value = (value * 33 + byte) & 0xFFFFFFFF
    value &= UNIQUE_ID_MASK
    return value or 1


class Channels:
    """Ordered store of loaded channels."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._channels: list[Channel] = []
        self._ids: set[int] = set()
        self._current_channel_number = self.settings.start_channel_number
        self._load_failed = False

    def clear(self):
        self._channels = []
        self._ids = set()
        self._current_channel_number = self.settings.start_channel_number
        self._load_failed = False

    def get_current_channel_number(self) -> int:
        return self._current_channel_number

    def _requires_groups(self, channel: Channel) -> bool:
        if channel.is_radio:
            return self.settings.only_radio_channels_with_groups
        return self.settings.only_tv_channels_with_groups

    def _medium_enabled(self, channel: Channel) -> bool:
        return self.settings.radio_enabled if channel.is_radio else self.settings.tv_enabled

    def _assign_unique_id(self, channel: Channel) -> int:
        if channel.tvg_id and not channel.has_synthetic_tvg_id:
            candidate = generate_unique_id(channel.tvg_id)
        else:
            candidate = len(self._channels) + 1

        # Linear probe on collision, never zero
        while candidate == 0 or candidate in self._ids:
            candidate = (candidate + 1) & UNIQUE_ID_MASK
        return candidate

    def add_channel(
        self,
        channel: Channel,
        group_ids: list[int],
        channel_groups: ChannelGroups,
        channel_had_groups: bool,
    ) -> bool:
        """
        Add a channel and append it to every group in group_ids.

        Returns False, leaving the store untouched, when the channel's medium
        is disabled, when all of its groups were filtered out, or when
        configuration only allows channels that carry groups.
        """
        if not self._medium_enabled(channel):
            return False

        if not group_ids and (channel_had_groups or self._requires_groups(channel)):
            return False

        channel.unique_id = self._assign_unique_id(channel)

        for group_id in group_ids:
            group = channel_groups.get_channel_group(group_id)
            if group is not None and group.is_radio == channel.is_radio:
                group.member_channel_ids.append(channel.unique_id)

        self._channels.append(channel)
        self._ids.add(channel.unique_id)
        self._current_channel_number += 1
        return True

    def get_channel(self, unique_id: int) -> Optional[Channel]:
        for channel in self._channels:
            if channel.unique_id == unique_id:
                return channel.model_copy(deep=True)
        return None

    def get_channels(self, radio: Optional[bool] = None) -> list[Channel]:
        return [
            c.model_copy(deep=True)
            for c in self._channels
            if radio is None or c.is_radio == radio
        ]

    def get_channels_amount(self) -> int:
        return len(self._channels)

    def channels_load_failed(self):
        self._load_failed = True

    @property
    def load_failed(self) -> bool:
        return self._load_failed
