import os
import tempfile

import pytest

from reelcheck.config import Config, load_config, load_or_default, save_config


def test_save_and_load_config_roundtrip(monkeypatch):
    monkeypatch.delenv("REELCHECK_API_URL", raising=False)
    monkeypatch.delenv("REELCHECK_API_KEY", raising=False)
    cfg = Config(base_dir="/srv/reelcheck")
    cfg.remote.api_key = "k-123"
    cfg.submit.max_frames = 12

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "reelcheck_config.yml")
        save_config(path, cfg)
        loaded = load_config(path)

    assert loaded.base_dir == "/srv/reelcheck"
    assert loaded.remote.api_key == "k-123"
    assert loaded.submit.max_frames == 12
    assert ".mp4" in loaded.supported_formats


def test_environment_overrides_key_and_url(monkeypatch, tmp_path):
    monkeypatch.setenv("REELCHECK_API_URL", "https://env.example")
    monkeypatch.setenv("REELCHECK_API_KEY", "from-env")

    cfg = load_or_default(str(tmp_path / "missing.yml"))

    assert cfg.remote.api_url == "https://env.example"
    assert cfg.remote.api_key == "from-env"


def test_submit_options_prefer_explicit_values():
    cfg = Config()
    cfg.submit.max_frames = 8
    cfg.remote.timeout_seconds = 90

    options = cfg.submit_options(max_frames=2)
    assert options.max_frames == 2
    assert options.timeout == 90
    assert options.skip_transcription is False


@pytest.mark.parametrize("kwargs", [{"max_frames": 0}, {"timeout": 0}, {"timeout": -1}])
def test_submit_options_validate(kwargs):
    with pytest.raises(ValueError):
        Config().submit_options(**kwargs)
