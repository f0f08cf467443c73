"""
Channel, media, group and provider data models.
Built by the playlist loader and read by the host-facing surface.
"""
from enum import Enum
from pydantic import BaseModel, Field, PrivateAttr
from typing import Optional, Union

# catchup_days value meaning "no day window constraint"
IGNORE_CATCHUP_DAYS = -1

SECONDS_PER_DAY = 24 * 60 * 60


class CatchupMode(str, Enum):
    """Vendor convention used to build a time-shifted URL."""
    DISABLED = "disabled"
    DEFAULT = "default"
    APPEND = "append"
    SHIFT = "shift"
    FLUSSONIC = "flussonic"
    XTREAM_CODES = "xtream_codes"
    TIMESHIFT = "timeshift"
    VOD = "vod"


class ProviderType(str, Enum):
    """Kind of upstream source owning a set of channels."""
    ADDON = "addon"
    SATELLITE = "satellite"
    CABLE = "cable"
    AERIAL = "aerial"
    IPTV = "iptv"
    UNKNOWN = "unknown"


class StreamProperty(str, Enum):
    """Well-known stream property keys passed to the player."""
    STREAM_URL = "streamurl"
    INPUTSTREAM = "inputstream"
    IS_REALTIME_STREAM = "isrealtimestream"
    MIMETYPE = "mimetype"
    EPG_PLAYBACK_AS_LIVE = "epgplaybackaslive"
    HTTP_USER_AGENT = "http-user-agent"
    HTTP_REFERRER = "http-referrer"
    HTTP_RECONNECT = "http-reconnect"
    PROGRAM = "program"


PropertyKey = Union[StreamProperty, str]


def property_key(key: PropertyKey) -> str:
    """Plain string form of a property key."""
    return key.value if isinstance(key, StreamProperty) else key


class Channel(BaseModel):
    """A live TV or radio channel parsed from an #EXTINF block."""
    unique_id: int = 0
    tvg_id: str = ""
    tvg_name: str = ""
    channel_name: str = ""
    channel_number: int = 0
    sub_channel_number: int = 0
    icon_path: str = ""
    is_radio: bool = False
    provider_unique_id: Optional[int] = None

    # Timing
    tvg_shift: int = 0  # Seconds added to EPG times
    catchup_correction_secs: int = 0

    # Catchup
    has_catchup: bool = False
    catchup_mode: CatchupMode = CatchupMode.DISABLED
    catchup_source: str = ""
    catchup_days: int = 0
    catchup_ts_stream: bool = False

    # Stream
    stream_url: str = ""
    properties: dict[str, str] = Field(default_factory=dict)

    _synthetic_tvg_id: bool = PrivateAttr(default=False)

    def set_synthetic_tvg_id(self, tvg_id: str):
        """Use a tvg id made up from the #EXTINF duration field."""
        self.tvg_id = tvg_id
        self._synthetic_tvg_id = True

    @property
    def has_synthetic_tvg_id(self) -> bool:
        return self._synthetic_tvg_id

    def add_property(self, key: PropertyKey, value: str):
        self.properties[property_key(key)] = value

    def get_property(self, key: PropertyKey) -> str:
        return self.properties.get(property_key(key), "")

    def has_property(self, key: PropertyKey) -> bool:
        return property_key(key) in self.properties

    @property
    def ignore_catchup_days(self) -> bool:
        return self.catchup_days == IGNORE_CATCHUP_DAYS

    @property
    def catchup_days_in_seconds(self) -> int:
        return self.catchup_days * SECONDS_PER_DAY

    @property
    def is_catchup_supported(self) -> bool:
        return self.has_catchup and self.catchup_mode != CatchupMode.DISABLED

    @property
    def catchup_supports_timeshifting(self) -> bool:
        """Catchup templates that take a start time can be seeked like live TV."""
        return (
            self.is_catchup_supported
            and self.catchup_mode != CatchupMode.VOD
            and bool(self.catchup_source)
        )


class MediaEntry(BaseModel):
    """An on-demand item exposed to the host as a recording."""
    unique_id: int = 0
    tvg_id: str = ""
    title: str = ""
    icon_path: str = ""
    is_radio: bool = False
    provider_unique_id: Optional[int] = None
    directory: str = ""
    size_in_bytes: int = 0
    stream_url: str = ""
    properties: dict[str, str] = Field(default_factory=dict)

    def update_from(self, channel: Channel):
        """Take the display fields parsed into the scratch channel."""
        self.tvg_id = channel.tvg_id
        self.title = channel.channel_name
        self.icon_path = channel.icon_path
        self.is_radio = channel.is_radio
        self.provider_unique_id = channel.provider_unique_id
        self.properties = dict(channel.properties)


class ChannelGroup(BaseModel):
    """A named group of channels, scoped to tv or radio."""
    unique_id: int = 0
    group_name: str
    is_radio: bool = False
    member_channel_ids: list[int] = Field(default_factory=list)


class Provider(BaseModel):
    """Upstream provider owning channels."""
    unique_id: int
    name: str
    type: ProviderType = ProviderType.UNKNOWN
    icon_path: str = ""
    countries: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)


class M3UHeader(BaseModel):
    """Playlist-wide defaults read from the #EXTM3U line."""
    catchup: str = ""
    catchup_days: str = ""
    catchup_source: str = ""
    tvg_url: str = ""
    epg_time_shift: int = 0
    catchup_correction_secs: int = 0
    xeev_catchup: bool = False


class SignalStatus(BaseModel):
    """Static signal information reported for every channel."""
    adapter_name: str = "IPTV Adapter 1"
    adapter_status: str = "OK"
