"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from script2voiceover.config import Settings
from script2voiceover.errors import ConfigurationError


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.api_key == ""
        assert settings.inference_url == "https://api.runpod.ai/v2/eitsgz3gndkh3s"
        assert settings.data_dir == Path("./data")
        assert settings.max_chunk_length == 180
        assert settings.allowed_reference_hosts == ()
        assert not settings.debug

    def test_reads_environment(self):
        settings = Settings.from_env({
            "RUNPOD_API_KEY": " key ",
            "RUNPOD_ENDPOINT_ID": "abc123",
            "VOICEOVER_DATA_DIR": "/srv/audio",
            "VOICEOVER_ALLOWED_REFERENCE_HOSTS": "Example.com, cdn.test ,",
            "VOICEOVER_MAX_CHUNK_LENGTH": "120",
            "VOICEOVER_POLL_INTERVAL": "0.5",
            "VOICEOVER_MAX_POLLS": "10",
            "DEBUG": "true",
        })
        assert settings.require_api_key() == "key"
        assert settings.inference_url == "https://api.runpod.ai/v2/abc123"
        assert settings.data_dir == Path("/srv/audio")
        assert settings.allowed_reference_hosts == ("example.com", "cdn.test")
        assert settings.max_chunk_length == 120
        assert settings.poll_interval == 0.5
        assert settings.max_polls == 10
        assert settings.debug

    def test_api_url_overrides_endpoint(self):
        settings = Settings.from_env({"RUNPOD_API_URL": "http://localhost:9000/v2/dev/"})
        assert settings.inference_url == "http://localhost:9000/v2/dev"

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError):
            Settings().require_api_key()

    def test_overrides_skip_none(self):
        settings = Settings(max_chunk_length=100).with_overrides(max_chunk_length=None, endpoint_id="x")
        assert settings.max_chunk_length == 100
        assert settings.endpoint_id == "x"

    def test_chunk_length_from_env_above_limit(self):
        with pytest.raises(ConfigurationError, match="between 1 and 400"):
            Settings.from_env({"VOICEOVER_MAX_CHUNK_LENGTH": "500"})

    @pytest.mark.parametrize("length", [0, -5, 401])
    def test_chunk_length_override_out_of_range(self, length):
        with pytest.raises(ConfigurationError):
            Settings().with_overrides(max_chunk_length=length)

    def test_chunk_length_at_limit(self):
        assert Settings(max_chunk_length=400).max_chunk_length == 400
