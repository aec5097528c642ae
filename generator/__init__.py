"""Host-side runtime for the azmp generator: configuration, logging and plugin hosting."""

from .config import Config, find_config_file, load_config, write_default_config
from .host import Host
from .log import setup_logging

__all__ = ["Config", "Host", "find_config_file", "load_config", "setup_logging", "write_default_config"]
