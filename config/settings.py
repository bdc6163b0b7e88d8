"""
Configuration. All settings from env vars (or a .env file).
No YAML. No TOML parsing. Credentials are read, never stored.

Per channel NAME (upper-cased):
    SOCIAL_<NAME>_ID, SOCIAL_<NAME>_SECRET, SOCIAL_<NAME>_TOKEN
    SOCIAL_<NAME>_MEDIA   images | videos | images+videos | text | all
    SOCIAL_<NAME>_SINCE   explicit cursor, overrides the stored one
    SOCIAL_<NAME>_PARAMS  JSON object handed to the channel unchanged
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

# Auto-load .env file so you don't need `export $(grep ...)` every time
from dotenv import load_dotenv
load_dotenv()

from models import MediaFilter

log = logging.getLogger(__name__)

DEFAULT_CHANNELS = "twitter,instagram,youtube,juicer"


@dataclass
class ChannelConfig:
    """What one channel needs for a crawl. Passed through to the adapter."""
    app_id: str = ""
    app_secret: str = ""
    app_token: str = ""
    media: MediaFilter = MediaFilter.ALL
    since: str | None = None
    params: dict = field(default_factory=dict)

    @property
    def has_credentials(self) -> bool:
        return bool(self.app_id or self.app_secret or self.app_token)


def channel_config_from_env(name: str, environ=os.environ) -> ChannelConfig:
    """
    Read one channel's settings.

    Raises:
        ValueError: Unknown media value or PARAMS that is not a JSON object.
    """
    prefix = f"SOCIAL_{name.upper()}_"

    media_value = environ.get(prefix + "MEDIA", MediaFilter.ALL.value).strip().lower()
    try:
        media = MediaFilter(media_value)
    except ValueError:
        valid = ", ".join(m.value for m in MediaFilter)
        raise ValueError(f"{prefix}MEDIA must be one of {valid}, got '{media_value}'") from None

    params_raw = environ.get(prefix + "PARAMS", "").strip()
    params = {}
    if params_raw:
        params = json.loads(params_raw)
        if not isinstance(params, dict):
            raise ValueError(f"{prefix}PARAMS must be a JSON object")

    return ChannelConfig(
        app_id=environ.get(prefix + "ID", ""),
        app_secret=environ.get(prefix + "SECRET", ""),
        app_token=environ.get(prefix + "TOKEN", ""),
        media=media,
        since=environ.get(prefix + "SINCE") or None,
        params=params,
    )


def _channels_from_env() -> dict[str, ChannelConfig]:
    names = os.environ.get("SOCIAL_CHANNELS", DEFAULT_CHANNELS)
    channels = {}
    for name in (n.strip().lower() for n in names.split(",")):
        if not name:
            continue
        try:
            channel = channel_config_from_env(name)
        except ValueError as e:
            log.error(f"Channel '{name}' misconfigured: {e}. Skipping.")
            continue
        if not channel.has_credentials:
            log.warning(f"No credentials for channel '{name}' (SOCIAL_{name.upper()}_ID/_SECRET/_TOKEN). Skipping.")
            continue
        channels[name] = channel
    return channels


@dataclass
class Config:
    # Storage: crawled items and each channel's last cursor
    db_path: Path = Path(os.environ.get("SOCIAL_DB_PATH", "data/social.db"))

    # Per-request timeout (seconds) and pagination depth cap per query
    timeout: float = float(os.environ.get("SOCIAL_TIMEOUT", "15"))
    max_pages: int = int(os.environ.get("SOCIAL_MAX_PAGES", "50"))

    # Threads shared by all (channel, query) pairs of one crawl
    max_workers: int = int(os.environ.get("SOCIAL_MAX_WORKERS", "8"))

    channels: dict[str, ChannelConfig] = field(default_factory=_channels_from_env)


def load_config() -> Config:
    return Config()
