from config.settings import ChannelConfig, Config, load_config

__all__ = ["ChannelConfig", "Config", "load_config"]
