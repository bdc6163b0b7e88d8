"""
Tests for environment-driven channel configuration and CLI resumption.
"""

import json
from pathlib import Path

import pytest
import sys

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Config
from config.settings import ChannelConfig, channel_config_from_env
from main import resume_channels
from models import MediaFilter


class TestChannelConfig:
    def test_reads_prefixed_vars(self):
        environ = {
            "SOCIAL_TWITTER_ID": "id",
            "SOCIAL_TWITTER_SECRET": "secret",
            "SOCIAL_TWITTER_MEDIA": "Images",
            "SOCIAL_TWITTER_SINCE": '{"#cats": "900"}',
            "SOCIAL_TWITTER_PARAMS": '{"lang": "en"}',
        }
        config = channel_config_from_env("twitter", environ)
        assert config.app_id == "id"
        assert config.app_secret == "secret"
        assert config.app_token == ""
        assert config.media is MediaFilter.IMAGES
        assert config.since == '{"#cats": "900"}'
        assert config.params == {"lang": "en"}
        assert config.has_credentials

    def test_defaults(self):
        config = channel_config_from_env("juicer", {})
        assert config.media is MediaFilter.ALL
        assert config.since is None
        assert config.params == {}
        assert not config.has_credentials

    def test_combined_media_value(self):
        config = channel_config_from_env("youtube", {"SOCIAL_YOUTUBE_MEDIA": "images+videos"})
        assert config.media is MediaFilter.IMAGES_VIDEOS

    def test_invalid_media(self):
        with pytest.raises(ValueError, match="SOCIAL_YOUTUBE_MEDIA"):
            channel_config_from_env("youtube", {"SOCIAL_YOUTUBE_MEDIA": "gifs"})

    def test_params_must_be_object(self):
        with pytest.raises(ValueError):
            channel_config_from_env("juicer", {"SOCIAL_JUICER_PARAMS": "[1, 2]"})


class FakeStorage:
    def __init__(self, states: dict):
        self._states = states

    def get_channel_state(self, channel: str):
        return self._states.get(channel)


class TestResumeChannels:
    def _config(self, **channels) -> Config:
        return Config(db_path=Path("unused.db"), channels=channels)

    def test_stored_cursor_used(self):
        config = self._config(twitter=ChannelConfig(app_token="t"))
        storage = FakeStorage({"twitter": json.dumps({"#cats": "900"})})
        channels = resume_channels(config, storage)
        assert channels["twitter"].since == json.dumps({"#cats": "900"})
        assert channels["twitter"].app_token == "t"

    def test_explicit_since_wins(self):
        config = self._config(twitter=ChannelConfig(app_token="t", since="100"))
        channels = resume_channels(config, FakeStorage({"twitter": "900"}))
        assert channels["twitter"].since == "100"

    def test_no_resume(self):
        config = self._config(twitter=ChannelConfig(app_token="t"))
        assert resume_channels(config, None)["twitter"].since is None
