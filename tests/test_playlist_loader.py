"""
Tests for playlist loading into the channel, group, provider and media stores.
"""
import pytest

from iptv_pvr.config import Settings
from iptv_pvr.models.channel import IGNORE_CATCHUP_DAYS, CatchupMode, StreamProperty
from iptv_pvr.services.channel_groups import ChannelGroups
from iptv_pvr.services.channels import Channels, generate_unique_id
from iptv_pvr.services.media import Media
from iptv_pvr.services.playlist_loader import PlaylistLoader
from iptv_pvr.services.providers import Providers

from conftest import MockFetcher


def make_loader(fetcher=None, **overrides):
    settings = Settings(_env_file=None, m3u_location="http://example.com/playlist.m3u", **overrides)
    return PlaylistLoader(
        Channels(settings),
        ChannelGroups(settings),
        Providers(),
        Media(),
        settings=settings,
        fetcher=fetcher or MockFetcher(),
    )


def load(text, **overrides):
    loader = make_loader(**overrides)
    assert loader.load_playlist_content(text)
    return loader


def assert_store_invariants(loader):
    channels = loader.channels.get_channels()
    ids = [c.unique_id for c in channels]
    assert all(ids)
    assert len(ids) == len(set(ids))

    by_id = {c.unique_id: c for c in channels}
    for channel in channels:
        if channel.provider_unique_id is not None:
            assert loader.providers.get_provider(channel.provider_unique_id) is not None
        if channel.has_catchup:
            assert channel.catchup_mode != CatchupMode.DISABLED
        if channel.catchup_mode == CatchupMode.VOD:
            assert channel.catchup_days == IGNORE_CATCHUP_DAYS

    for radio in (False, True):
        for group in loader.channel_groups.get_channel_groups(radio):
            for member_id in group.member_channel_ids:
                assert by_id[member_id].is_radio == group.is_radio


class TestScenarios:
    """End to end playlist scenarios."""

    def test_single_tv_channel(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1 tvg-id="c1" tvg-name="One" group-title="News",One\n'
            'http://h/1\n'
        )

        channels = loader.channels.get_channels()
        assert len(channels) == 1
        assert channels[0].unique_id == generate_unique_id("c1")
        assert channels[0].channel_name == "One"
        assert channels[0].stream_url == "http://h/1"

        groups = loader.channel_groups.get_channel_groups(radio=False)
        assert [g.group_name for g in groups] == ["News"]
        assert groups[0].member_channel_ids == [channels[0].unique_id]

        assert loader.providers.get_num_providers() == 0
        assert loader.media.get_num_media() == 0

    def test_radio_with_xeev_catchup_header(self):
        loader = load(
            '#EXTM3U catchup="xc"\n'
            '#EXTINF:-1 tvg-id="r1" radio="true",* FM One\n'
            'http://h/r\n'
        )

        assert loader.header.xeev_catchup is True
        channels = loader.channels.get_channels(radio=True)
        assert len(channels) == 1
        assert channels[0].has_catchup is True
        assert channels[0].catchup_mode == CatchupMode.XTREAM_CODES

    def test_vod_media_entry(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1 media-dir="Movies" media-size="1024",Film\n'
            'http://h/v.mkv\n',
            show_vod_as_recordings=True,
        )

        assert loader.channels.get_channels_amount() == 0
        media = loader.media.get_media()
        assert len(media) == 1
        assert media[0].title == "Film"
        assert media[0].directory == "Movies"
        assert media[0].size_in_bytes == 1024
        assert media[0].stream_url == "http://h/v.mkv"

    def test_group_gated_drop(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1 tvg-id="c2",NoGroup\n'
            'http://h/2\n',
            only_tv_channels_with_groups=True,
        )
        assert loader.channels.get_channels_amount() == 0

    def test_group_less_channel_allowed_by_default(self):
        loader = load('#EXTM3U\n#EXTINF:-1 tvg-id="c2",NoGroup\nhttp://h/2\n')
        assert loader.channels.get_channels_amount() == 1


class TestHeader:
    """#EXTM3U header handling."""

    def test_header_only_playlist(self):
        loader = load('#EXTM3U url-tvg="http://example.com/epg.xml.gz"\n')
        assert loader.channels.get_channels_amount() == 0
        assert loader.tvg_url == "http://example.com/epg.xml.gz"

    def test_x_tvg_url_preferred(self):
        loader = load('#EXTM3U url-tvg="http://b/epg.xml" x-tvg-url="http://a/epg.xml"\n')
        assert loader.tvg_url == "http://a/epg.xml"

    def test_byte_order_mark_stripped(self):
        loader = load('\ufeff#EXTM3U x-tvg-url="http://a/epg.xml"\n#EXTINF:-1,One\nhttp://h/1\n')
        assert loader.tvg_url == "http://a/epg.xml"
        assert loader.channels.get_channels_amount() == 1

    def test_missing_header_still_parses(self):
        loader = load('#EXTINF:-1 tvg-id="c1",One\nhttp://h/1\n')
        assert loader.channels.get_channels_amount() == 1

    def test_header_defaults_apply_to_channels(self):
        loader = load(
            '#EXTM3U tvg-shift="2" catchup="shift" catchup-days="3"\n'
            '#EXTINF:-1 tvg-id="c1",One\nhttp://h/1?token=x\n'
        )
        channel = loader.channels.get_channels()[0]
        assert channel.tvg_shift == 7200
        assert channel.catchup_mode == CatchupMode.SHIFT
        assert channel.catchup_days == 3
        assert channel.catchup_source == "http://h/1?token=x&utc={utc}&lutc={lutc}"


class TestSamplePlaylist:
    """The shared sample playlist."""

    def test_counts(self, sample_m3u_content):
        loader = load(sample_m3u_content)
        assert loader.channels.get_channels_amount() == 3
        assert loader.channel_groups.get_channel_groups_amount() == 5
        assert loader.providers.get_num_providers() == 1
        assert loader.media.get_num_media() == 1
        assert loader.tvg_url == "http://example.com/guide.xml"
        assert_store_invariants(loader)

    def test_channel_fields(self, sample_m3u_content):
        loader = load(sample_m3u_content)
        news, sport, jazz = loader.channels.get_channels()

        assert news.channel_number == 101
        assert news.tvg_shift == 3600
        assert news.icon_path == "http://example.com/news.png"
        assert news.get_property(StreamProperty.HTTP_USER_AGENT) == "TestAgent/1.0"
        assert not news.has_property("network-caching")
        assert news.get_property(StreamProperty.IS_REALTIME_STREAM) == "true"

        assert sport.channel_number == 2
        assert sport.catchup_mode == CatchupMode.FLUSSONIC
        assert sport.catchup_days == 7
        assert sport.catchup_source == "http://example.com/sport/index-{utc}-{duration}.m3u8"
        assert sport.get_property(StreamProperty.INPUTSTREAM) == "inputstream.adaptive"
        assert sport.get_property("inputstream.adaptive.manifest_type") == "hls"
        assert sport.provider_unique_id == news.provider_unique_id

        assert jazz.is_radio is True
        assert jazz.channel_number == 3

    def test_groups(self, sample_m3u_content):
        loader = load(sample_m3u_content)
        tv_groups = [g.group_name for g in loader.channel_groups.get_channel_groups(radio=False)]
        radio_groups = [g.group_name for g in loader.channel_groups.get_channel_groups(radio=True)]
        assert tv_groups == ["News", "UK", "Sport"]
        assert radio_groups == ["Music", "Chill"]

    def test_media_disabled_keeps_vod_as_channel(self, sample_m3u_content):
        loader = load(sample_m3u_content, media_enabled=False)
        assert loader.media.get_num_media() == 0
        assert loader.channels.get_channels_amount() == 4

    def test_radio_disabled(self, sample_m3u_content):
        loader = load(sample_m3u_content, radio_enabled=False)
        assert loader.channels.get_channels(radio=True) == []
        assert loader.channel_groups.get_channel_groups(radio=True) == []

    def test_custom_tv_groups(self, sample_m3u_content):
        loader = load(sample_m3u_content, custom_tv_groups=["Sport"])
        names = [c.channel_name for c in loader.channels.get_channels(radio=False)]
        assert names == ["Sport 1"]


class TestEntryHandling:
    """Per-entry parsing rules."""

    def test_playlist_type_vod_becomes_media(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1,Episode 1\n'
            '#EXT-X-PLAYLIST-TYPE:VOD\n'
            'http://h/e1.mp4\n'
            '#EXTINF:-1,Live\n'
            'http://h/live\n'
        )
        assert [m.title for m in loader.media.get_media()] == ["Episode 1"]
        assert [c.channel_name for c in loader.channels.get_channels()] == ["Live"]

    def test_duplicate_media_entry_dropped(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1 media="true",Film\nhttp://h/v.mkv\n'
            '#EXTINF:-1 media="true",Film\nhttp://h/v.mkv\n'
        )
        assert loader.media.get_num_media() == 1

    def test_extvlcopt_dash_only_reconnect(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1,One\n'
            '#EXTVLCOPT--http-reconnect=true\n'
            '#EXTVLCOPT--http-user-agent=ignored\n'
            'http://h/1\n'
        )
        channel = loader.channels.get_channels()[0]
        assert channel.get_property(StreamProperty.HTTP_RECONNECT) == "true"
        assert not channel.has_property(StreamProperty.HTTP_USER_AGENT)

    def test_kodiprop_keys_lowercased(self):
        loader = load('#EXTM3U\n#EXTINF:-1,One\n#KODIPROP:InputStreamClass=inputstream.ffmpegdirect\nhttp://h/1\n')
        channel = loader.channels.get_channels()[0]
        assert channel.get_property(StreamProperty.INPUTSTREAM) == "inputstream.ffmpegdirect"

    def test_scratch_reset_between_entries(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1 tvg-id="a" radio="true" catchup="shift",A\n'
            '#EXTVLCOPT:http-referrer=http://ref\n'
            'http://h/a\n'
            '#EXTINF:-1 tvg-id="b",B\n'
            'http://h/b\n'
        )
        b = loader.channels.get_channels(radio=False)[0]
        assert b.channel_name == "B"
        assert b.has_catchup is False
        assert not b.has_property(StreamProperty.HTTP_REFERRER)

    def test_duplicate_tvg_ids_get_distinct_unique_ids(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1 tvg-id="dup",One\nhttp://h/1\n'
            '#EXTINF:-1 tvg-id="dup",Two\nhttp://h/2\n'
            '#EXTINF:-1,Three\nhttp://h/3\n'
            '#EXTINF:-1,Four\nhttp://h/4\n'
        )
        assert_store_invariants(loader)
        assert loader.channels.get_channels_amount() == 4

    def test_malformed_extinf_is_inert(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1 tvg-id="a",Alpha\n'
            '#EXTINF:-1 broken line\n'
            'http://h/a\n'
        )
        channels = loader.channels.get_channels()
        assert [c.channel_name for c in channels] == ["Alpha"]

    def test_extgrp_adds_groups(self):
        loader = load('#EXTM3U\n#EXTINF:-1,One\n#EXTGRP:Films;Kids\nhttp://h/1\n')
        groups = [g.group_name for g in loader.channel_groups.get_channel_groups(radio=False)]
        assert groups == ["Films", "Kids"]

    def test_malformed_extinf_keeps_pending_groups(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1 tvg-id="c1" group-title="News",One\n'
            '#EXTINF:broken no comma\n'
            'http://h/1\n'
        )
        channels = loader.channels.get_channels()
        assert [c.channel_name for c in channels] == ["One"]
        assert channels[0].channel_number == 1
        members = loader.channel_groups.get_channel_group_members("News", radio=False)
        assert members == [channels[0].unique_id]

    def test_repeated_group_names_add_one_membership(self):
        loader = load('#EXTM3U\n#EXTINF:-1 group-title="News;News",One\n#EXTGRP:News\nhttp://h/1\n')
        channel = loader.channels.get_channels()[0]
        members = loader.channel_groups.get_channel_group_members("News", radio=False)
        assert members == [channel.unique_id]

    def test_extvlcopt_accepted_keys(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1,One\n'
            '#EXTVLCOPT:http-referrer=http://h/\n'
            '#EXTVLCOPT:program=1001\n'
            '#EXTVLCOPT:http-user-agent=Agent/2\n'
            'http://h/1\n'
        )
        channel = loader.channels.get_channels()[0]
        assert channel.get_property(StreamProperty.HTTP_REFERRER) == "http://h/"
        assert channel.get_property(StreamProperty.PROGRAM) == "1001"
        assert channel.get_property(StreamProperty.HTTP_USER_AGENT) == "Agent/2"

    def test_kodiprop_inputstream_aliases(self):
        loader = load(
            '#EXTM3U\n'
            '#EXTINF:-1,One\n#KODIPROP:inputstreamclass=inputstream.adaptive\nhttp://h/1\n'
            '#EXTINF:-1,Two\n#KODIPROP:inputstreamaddon=inputstream.ffmpegdirect\nhttp://h/2\n'
        )
        one, two = loader.channels.get_channels()
        assert one.get_property(StreamProperty.INPUTSTREAM) == "inputstream.adaptive"
        assert not one.has_property("inputstreamclass")
        assert two.get_property(StreamProperty.INPUTSTREAM) == "inputstream.ffmpegdirect"


class TestReload:
    """Reload, idempotence and host notifications."""

    def test_reload_is_idempotent(self, sample_m3u_content):
        loader = make_loader()

        assert loader.reload_playlist_content(sample_m3u_content)
        first = (
            [c.model_dump() for c in loader.channels.get_channels()],
            [g.model_dump() for g in loader.channel_groups.get_channel_groups(False)],
            [p.model_dump() for p in loader.providers.get_providers()],
            [m.model_dump() for m in loader.media.get_media()],
        )

        assert loader.reload_playlist_content(sample_m3u_content)
        second = (
            [c.model_dump() for c in loader.channels.get_channels()],
            [g.model_dump() for g in loader.channel_groups.get_channel_groups(False)],
            [p.model_dump() for p in loader.providers.get_providers()],
            [m.model_dump() for m in loader.media.get_media()],
        )
        assert first == second

    def test_successful_reload_notifies_host(self, loader, host_client, sample_m3u_content):
        assert loader.reload_playlist_content(sample_m3u_content)
        assert host_client.update_counts == {
            "channels": 1,
            "channel_groups": 1,
            "providers": 1,
            "recordings": 1,
        }

    def test_failed_reload_marks_load_failed(self, loader, host_client):
        assert not loader.reload_playlist_content(None)
        assert loader.channels.load_failed
        assert loader.channel_groups.load_failed
        assert host_client.update_counts["channels"] == 0

    @pytest.mark.asyncio
    async def test_reload_playlist_fetches(self, sample_m3u_content):
        fetcher = MockFetcher({"http://example.com/playlist.m3u": sample_m3u_content})
        loader = make_loader(fetcher=fetcher)

        assert await loader.reload_playlist()
        assert loader.channels.get_channels_amount() == 3
        # Cache allowed only while refresh is disabled
        assert fetcher.calls == [("iptv.m3u.cache", "http://example.com/playlist.m3u", True)]

    @pytest.mark.asyncio
    async def test_missing_location(self):
        loader = make_loader()
        loader.settings.m3u_location = ""
        assert not await loader.load_playlist()

    @pytest.mark.asyncio
    async def test_unreadable_playlist(self):
        loader = make_loader(fetcher=MockFetcher({}))
        assert not await loader.reload_playlist()
        assert loader.channels.load_failed
