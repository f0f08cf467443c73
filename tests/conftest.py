"""
Pytest configuration and fixtures for IPTV PVR tests.
"""
import pytest

from iptv_pvr.config import Settings
from iptv_pvr.services.channel_groups import ChannelGroups
from iptv_pvr.services.channels import Channels
from iptv_pvr.services.host_client import HostClient
from iptv_pvr.services.media import Media
from iptv_pvr.services.playlist_loader import PlaylistLoader
from iptv_pvr.services.providers import Providers


class MockFetcher:
    """File fetcher serving fixed contents per location."""

    def __init__(self, contents: dict[str, str] | None = None):
        self.contents = contents or {}
        self.calls = []

    async def get_cached_file_contents(self, cache_name, location, use_cache=True):
        self.calls.append((cache_name, location, use_cache))
        return self.contents.get(location)


class MockCache:
    """In-memory stand-in for the artifact cache."""

    def __init__(self):
        self.data = {}

    async def get(self, name, location):
        return self.data.get((name, location))

    async def set(self, name, location, content, ttl_seconds=None):
        self.data[(name, location)] = content


@pytest.fixture
def settings(tmp_path):
    """Fresh settings that ignore the environment and .env files."""
    return Settings(
        _env_file=None,
        database_path=str(tmp_path / "test_cache.db"),
        m3u_location="http://example.com/playlist.m3u",
    )


@pytest.fixture
def host_client():
    return HostClient()


@pytest.fixture
def loader(settings, host_client):
    """Playlist loader over empty stores."""
    return PlaylistLoader(
        Channels(settings),
        ChannelGroups(settings),
        Providers(),
        Media(),
        settings=settings,
        fetcher=MockFetcher(),
        client=host_client,
    )


@pytest.fixture
def sample_m3u_content():
    """Sample extended M3U content for testing."""
    return """#EXTM3U x-tvg-url="http://example.com/guide.xml" tvg-shift="1"
#EXTINF:-1 tvg-id="news.uk" tvg-name="News HD" tvg-logo="http://example.com/news.png" tvg-chno="101" group-title="News;UK" provider="Acme" provider-type="iptv",News HD
#EXTVLCOPT:http-user-agent=TestAgent/1.0
#EXTVLCOPT:network-caching=1000
http://example.com/live/news.m3u8
#EXTINF:-1 tvg-id="sport.uk" group-title="Sport" catchup="flussonic" catchup-days="7" provider="Acme",Sport 1
#KODIPROP:inputstreamaddon=inputstream.adaptive
#KODIPROP:inputstream.adaptive.manifest_type=hls
http://example.com/sport/index.m3u8
#EXTINF:-1 tvg-id="jazz.fm" radio="true" group-title="Music",Jazz FM
#EXTGRP:Chill
http://example.com/radio/jazz.mp3
#EXTINF:-1 media-dir="Movies" media-size="2048",Some Film
http://example.com/vod/film.mkv
"""


@pytest.fixture
def sample_epg_xml():
    """Sample XMLTV EPG content for testing."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<tv>
    <channel id="news.uk">
        <display-name>News HD</display-name>
        <icon src="https://example.com/news.png"/>
    </channel>
    <channel id="sport.uk">
        <display-name>Sport 1</display-name>
    </channel>
    <programme start="20231114220000 +0000" stop="20231114230000 +0000" channel="news.uk">
        <title>Evening News</title>
        <desc>Daily news broadcast</desc>
        <category>News</category>
    </programme>
    <programme start="20231114230000 +0000" stop="20231115000000 +0000" channel="news.uk" catchup-id="abc123">
        <title>Late Show</title>
    </programme>
    <programme start="20231114223000 +0100" stop="20231114233000 +0100" channel="sport.uk">
        <title>Match of the Day</title>
    </programme>
</tv>
"""
