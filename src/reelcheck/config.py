"""Configuration handling."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

import yaml

from .client import DEFAULT_FORMATS
from .models import SubmitOptions

DEFAULT_CONFIG_PATH = "reelcheck_config.yml"


@dataclass
class RemoteConfig:
    api_url: str = "http://localhost:8000"
    api_key: Optional[str] = None
    timeout_seconds: float = 600.0
    fetch_timeout_seconds: float = 60.0


@dataclass
class SubmitConfig:
    max_frames: Optional[int] = None
    skip_transcription: bool = False


@dataclass
class Config:
    base_dir: str = ""
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    submit: SubmitConfig = field(default_factory=SubmitConfig)
    supported_formats: List[str] = field(default_factory=lambda: list(DEFAULT_FORMATS))
    debug_logging: bool = False

    def submit_options(
        self,
        max_frames: Optional[int] = None,
        skip_transcription: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> SubmitOptions:
        return SubmitOptions(
            max_frames=max_frames if max_frames is not None else self.submit.max_frames,
            skip_transcription=(
                skip_transcription
                if skip_transcription is not None
                else self.submit.skip_transcription
            ),
            timeout=timeout if timeout is not None else self.remote.timeout_seconds,
        )


def apply_env(config: Config) -> Config:
    api_url = os.getenv("REELCHECK_API_URL")
    if api_url:
        config.remote.api_url = api_url
    api_key = os.getenv("REELCHECK_API_KEY")
    if api_key:
        config.remote.api_key = api_key
    return config


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    remote = RemoteConfig(**data.get("remote", {}))
    submit = SubmitConfig(**data.get("submit", {}))
    formats = data.get("supported_formats") or list(DEFAULT_FORMATS)

    config = Config(
        base_dir=data.get("base_dir", ""),
        remote=remote,
        submit=submit,
        supported_formats=[str(fmt).lower() for fmt in formats],
        debug_logging=bool(data.get("debug_logging", False)),
    )
    return apply_env(config)


def load_or_default(path: Optional[str]) -> Config:
    if path and os.path.exists(path):
        return load_config(path)
    return apply_env(Config())


def save_config(path: str, config: Config) -> None:
    data = {
        "base_dir": config.base_dir,
        "remote": {
            "api_url": config.remote.api_url,
            "api_key": config.remote.api_key,
            "timeout_seconds": config.remote.timeout_seconds,
            "fetch_timeout_seconds": config.remote.fetch_timeout_seconds,
        },
        "submit": {
            "max_frames": config.submit.max_frames,
            "skip_transcription": config.submit.skip_transcription,
        },
        "supported_formats": list(config.supported_formats),
        "debug_logging": config.debug_logging,
    }
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)
