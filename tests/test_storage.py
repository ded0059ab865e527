"""Tests for the local storage backend."""

import pytest

from script2voiceover.errors import UploadFailed
from script2voiceover.storage import LocalStorage


class TestLocalStorage:
    def test_upload_returns_public_url(self, tmp_path):
        storage = LocalStorage(tmp_path, public_url="https://voice.example.com/")
        url = storage.upload("proj/voiceover.wav", b"RIFF", "audio/wav")
        assert url == "https://voice.example.com/files/proj/voiceover.wav"
        assert (tmp_path / "proj" / "voiceover.wav").read_bytes() == b"RIFF"

    def test_upload_overwrites(self, tmp_path):
        storage = LocalStorage(tmp_path)
        storage.upload("p/a.wav", b"old", "audio/wav")
        url = storage.upload("p/a.wav", b"new", "audio/wav")
        assert url.startswith("file://")
        assert (tmp_path / "p" / "a.wav").read_bytes() == b"new"
        assert not (tmp_path / "p" / "a.wav.tmp").exists()

    @pytest.mark.parametrize("path", ["../escape.wav", "/abs/voiceover.wav", "p/../../x.wav"])
    def test_rejects_paths_outside_root(self, tmp_path, path):
        with pytest.raises(UploadFailed):
            LocalStorage(tmp_path).upload(path, b"x", "audio/wav")

    def test_write_failure(self, tmp_path):
        (tmp_path / "p").write_text("not a directory")
        with pytest.raises(UploadFailed, match="Failed to upload audio"):
            LocalStorage(tmp_path).upload("p/a.wav", b"x", "audio/wav")
