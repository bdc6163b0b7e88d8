"""
Channel registry. Maps a configured channel name to its adapter.
"""

import logging

from channels.base import (
    ChannelAdapter,
    ChannelError,
    CrawlCancelled,
    ParseError,
    TransportError,
    UnsupportedQueryError,
)
from channels.instagram import InstagramChannel
from channels.juicer import JuicerChannel
from channels.twitter import TwitterChannel
from channels.youtube import YoutubeChannel
from config.settings import ChannelConfig

CHANNELS: dict[str, type[ChannelAdapter]] = {
    "twitter": TwitterChannel,
    "instagram": InstagramChannel,
    "youtube": YoutubeChannel,
    "juicer": JuicerChannel,
}


def create_channel(
    name: str,
    config: ChannelConfig,
    timeout: float = 15.0,
    logger: logging.Logger | None = None,
) -> ChannelAdapter:
    """Create the adapter for a configured channel. Credentials pass through unchanged."""
    cls = CHANNELS.get(name.lower())
    if cls is None:
        raise ChannelError(
            f"Unknown channel: '{name}'. "
            f"Known channels: {', '.join(sorted(CHANNELS))}."
        )
    return cls(
        app_id=config.app_id or None,
        app_secret=config.app_secret or None,
        app_token=config.app_token or None,
        params=config.params,
        timeout=timeout,
        logger=logger,
    )


__all__ = [
    "CHANNELS",
    "ChannelAdapter",
    "ChannelError",
    "CrawlCancelled",
    "InstagramChannel",
    "JuicerChannel",
    "ParseError",
    "TransportError",
    "TwitterChannel",
    "UnsupportedQueryError",
    "YoutubeChannel",
    "create_channel",
]
