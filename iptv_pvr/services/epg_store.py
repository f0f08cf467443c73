"""
EPG Store.
Parses XMLTV guide data and answers programme lookups for catchup.
"""
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
import logging
import time
from typing import Optional

from iptv_pvr.config import Settings, get_settings
from iptv_pvr.models.channel import Channel, SECONDS_PER_DAY
from iptv_pvr.models.epg import EpgEntry

logger = logging.getLogger(__name__)


def parse_xmltv_date(date_str: str) -> int:
    """
    Parse an XMLTV date into UTC epoch seconds.
    Format: 20251212040000 +0000 or 20251212040000
    """
    date_str = date_str.strip()
    if ' ' in date_str:
        dt = datetime.strptime(date_str, '%Y%m%d%H%M%S %z')
    else:
        dt = datetime.strptime(date_str[:14], '%Y%m%d%H%M%S').replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


class EpgStore:
    """Programmes keyed by XMLTV channel id."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._programmes: dict[str, list[EpgEntry]] = {}
        self._display_names: dict[str, str] = {}

    def clear(self):
        self._programmes = {}
        self._display_names = {}

    @property
    def channel_count(self) -> int:
        return len(self._programmes)

    @property
    def programme_count(self) -> int:
        return sum(len(p) for p in self._programmes.values())

    def load_epg_content(self, content: str, now: Optional[int] = None) -> bool:
        """
        Parse XMLTV text into the store.

        Programmes outside the configured past/future window are skipped.
        Returns False when the document is not well-formed XML.
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            logger.error(f"Failed to parse XMLTV data: {e}")
            return False

        now = int(time.time()) if now is None else now
        window_start = now - self.settings.epg_max_past_days * SECONDS_PER_DAY
        window_end = now + self.settings.epg_max_future_days * SECONDS_PER_DAY

        # Parse channel definitions
        for channel_elem in root.findall('channel'):
            channel_id = channel_elem.get('id')
            if not channel_id:
                continue
            for display_name in channel_elem.findall('display-name'):
                if display_name.text:
                    self._display_names.setdefault(display_name.text.strip().lower(), channel_id)

        skipped = 0
        for programme in root.findall('programme'):
            channel_id = programme.get('channel')
            start = programme.get('start')
            stop = programme.get('stop')

            if not all([channel_id, start, stop]):
                continue

            try:
                start_ts = parse_xmltv_date(start)
                stop_ts = parse_xmltv_date(stop)
            except ValueError as e:
                logger.warning(f"Failed to parse date: {e}")
                continue

            if stop_ts < window_start or start_ts > window_end:
                skipped += 1
                continue

            title_elem = programme.find('title')
            desc_elem = programme.find('desc')
            category_elem = programme.find('category')
            icon_elem = programme.find('icon')

            self._programmes.setdefault(channel_id, []).append(EpgEntry(
                channel_id=channel_id,
                title=title_elem.text if title_elem is not None and title_elem.text else 'Unknown',
                start=start_ts,
                end=stop_ts,
                description=desc_elem.text if desc_elem is not None else None,
                category=category_elem.text if category_elem is not None else None,
                icon=icon_elem.get('src') if icon_elem is not None else None,
                catchup_id=programme.get('catchup-id', ''),
            ))

        for entries in self._programmes.values():
            entries.sort(key=lambda e: e.start)

        logger.info(
            f"Loaded EPG: {self.channel_count} channels, {self.programme_count} programmes "
            f"({skipped} outside window)"
        )
        return True

    def _find_programmes(self, channel: Channel) -> list[EpgEntry]:
        if channel.tvg_id and not channel.has_synthetic_tvg_id:
            entries = self._programmes.get(channel.tvg_id)
            if entries is not None:
                return entries

        for name in (channel.tvg_name, channel.channel_name):
            if not name:
                continue
            epg_channel_id = self._display_names.get(name.strip().lower())
            if epg_channel_id is not None:
                return self._programmes.get(epg_channel_id, [])
        return []

    def _shifted(self, entry: EpgEntry, shift: int) -> EpgEntry:
        return entry.model_copy(update={'start': entry.start + shift, 'end': entry.end + shift})

    def get_epg_entry(self, channel: Channel, at_time: int) -> Optional[EpgEntry]:
        """Programme airing on the channel at at_time, in channel-local time."""
        shift = channel.tvg_shift
        for entry in self._find_programmes(channel):
            if entry.start + shift <= at_time < entry.end + shift:
                return self._shifted(entry, shift)
        return None

    def get_epg_for_channel(self, channel: Channel, start: int, end: int) -> list[EpgEntry]:
        """Programmes overlapping [start, end), in channel-local time."""
        shift = channel.tvg_shift
        return [
            self._shifted(entry, shift)
            for entry in self._find_programmes(channel)
            if entry.end + shift > start and entry.start + shift < end
        ]
