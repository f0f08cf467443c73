"""
Configuration management for the IPTV PVR backend.
Uses pydantic-settings for environment variable loading.
"""
from enum import Enum
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class RefreshMode(str, Enum):
    """How the playlist refresh worker decides to reload."""
    DISABLED = "disabled"
    REPEATED_REFRESH = "repeated_refresh"
    ONCE_PER_DAY = "once_per_day"


class PathType(str, Enum):
    """Where channel logos are resolved from."""
    REMOTE = "remote"
    LOCAL = "local"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "IPTV PVR"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    rate_limit_per_minute: int = 100

    # Playlist / EPG sources (local path or http(s) URL)
    m3u_location: str = ""
    use_m3u_cache: bool = True
    epg_location: str = ""  # Empty = use the url-tvg from the playlist header
    use_epg_cache: bool = True

    # Artifact cache
    database_path: str = "data/iptv_cache.db"
    cache_ttl_seconds: int = 7 * 24 * 3600

    # Refresh
    m3u_refresh_mode: RefreshMode = RefreshMode.DISABLED
    m3u_refresh_interval_mins: int = 60
    m3u_refresh_hour: int = 4

    # Channels
    start_channel_number: int = 1
    number_channels_by_m3u_order_only: bool = False
    default_provider_name: str = ""
    tv_enabled: bool = True
    radio_enabled: bool = True
    custom_tv_groups: list[str] = []  # Empty = all groups allowed
    custom_radio_groups: list[str] = []
    only_tv_channels_with_groups: bool = False
    only_radio_channels_with_groups: bool = False

    # Logos
    logo_path: str = ""
    logo_path_type: PathType = PathType.REMOTE
    use_local_logos_only: bool = False

    # Catchup
    catchup_enabled: bool = True
    catchup_days: int = 5
    catchup_correction_secs: int = 0
    catchup_only_on_finished_programmes: bool = False
    catchup_play_epg_as_live: bool = False
    catchup_watch_epg_begin_buffer_mins: int = 5
    catchup_watch_epg_end_buffer_mins: int = 15

    # Media (VOD entries shown as recordings)
    media_enabled: bool = True
    show_vod_as_recordings: bool = True

    # EPG window
    epg_max_past_days: int = 3
    epg_max_future_days: int = 3

    # Admin API key for protected endpoints
    admin_api_key: str = "dev-admin-key"

    # Pydantic V2 configuration
    model_config = SettingsConfigDict(env_prefix="IPTV_", env_file=".env", validate_assignment=True)

    @property
    def has_default_provider_name(self) -> bool:
        return bool(self.default_provider_name)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
