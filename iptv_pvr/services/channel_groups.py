"""
Channel group registry.
Groups are deduplicated on (name, medium) and filtered by configuration.
"""
import logging
from typing import Optional

from iptv_pvr.config import Settings, get_settings
from iptv_pvr.models.channel import ChannelGroup

logger = logging.getLogger(__name__)


class ChannelGroups:
    """Store of tv and radio channel groups in first-appearance order."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._groups: list[ChannelGroup] = []
        self._by_key: dict[tuple[str, bool], ChannelGroup] = {}
        self._next_unique_id = 1
        self._load_failed = False

    def clear(self):
        self._groups = []
        self._by_key = {}
        self._next_unique_id = 1
        self._load_failed = False

    def check_channel_group_allowed(self, group: ChannelGroup) -> bool:
        """Apply the medium switches and the custom allow-lists."""
        if group.is_radio:
            if not self.settings.radio_enabled:
                return False
            allowed = self.settings.custom_radio_groups
        else:
            if not self.settings.tv_enabled:
                return False
            allowed = self.settings.custom_tv_groups

        if allowed and group.group_name not in allowed:
            logger.debug(f"Filtered out channel group '{group.group_name}' (radio={group.is_radio})")
            return False
        return True

    def add_channel_group(self, group: ChannelGroup) -> int:
        """
        Register a group and return its unique id.

        The first occurrence of a (name, is_radio) pair keeps its display
        fields; later occurrences resolve to the same id.
        """
        key = (group.group_name, group.is_radio)
        existing = self._by_key.get(key)
        if existing is not None:
            return existing.unique_id

        stored = ChannelGroup(
            unique_id=self._next_unique_id,
            group_name=group.group_name,
            is_radio=group.is_radio,
        )
        self._next_unique_id += 1
        self._groups.append(stored)
        self._by_key[key] = stored
        return stored.unique_id

    def get_channel_group(self, unique_id: int) -> Optional[ChannelGroup]:
        for group in self._groups:
            if group.unique_id == unique_id:
                return group
        return None

    def find_channel_group(self, group_name: str, is_radio: bool) -> Optional[ChannelGroup]:
        return self._by_key.get((group_name, is_radio))

    def get_channel_groups(self, radio: bool) -> list[ChannelGroup]:
        """Groups of one medium that have at least one member."""
        return [
            g.model_copy(deep=True)
            for g in self._groups
            if g.is_radio == radio and g.member_channel_ids
        ]

    def get_channel_group_members(self, group_name: str, radio: bool) -> list[int]:
        group = self.find_channel_group(group_name, radio)
        return list(group.member_channel_ids) if group else []

    def get_channel_groups_amount(self) -> int:
        return len(self._groups)

    def channel_groups_load_failed(self):
        self._load_failed = True

    @property
    def load_failed(self) -> bool:
        return self._load_failed
