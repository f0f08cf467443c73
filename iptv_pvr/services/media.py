"""
Media store.
On-demand playlist entries exposed to the host as recordings.
"""
import logging
from typing import Optional

from iptv_pvr.models.channel import MediaEntry
from iptv_pvr.services.channels import generate_unique_id

logger = logging.getLogger(__name__)


class Media:
    """Ordered store of media entries keyed by a generated unique id."""

    def __init__(self):
        self._media: list[MediaEntry] = []
        self._ids: set[int] = set()

    def clear(self):
        self._media = []
        self._ids = set()

    def add_media_entry(self, entry: MediaEntry) -> bool:
        """Add an entry; an entry whose generated id is already taken is dropped."""
        unique_id = generate_unique_id(f"{entry.title}{entry.stream_url}")
        if unique_id in self._ids:
            return False

        entry.unique_id = unique_id
        self._media.append(entry)
        self._ids.add(unique_id)
        return True

    def get_media(self) -> list[MediaEntry]:
        return [m.model_copy(deep=True) for m in self._media]

    def get_num_media(self) -> int:
        return len(self._media)

    def get_media_entry(self, unique_id: int) -> Optional[MediaEntry]:
        for entry in self._media:
            if entry.unique_id == unique_id:
                return entry.model_copy(deep=True)
        return None

    def get_media_entry_url(self, unique_id: int) -> str:
        entry = self.get_media_entry(unique_id)
        return entry.stream_url if entry else ""
