"""Configuration loading and logging setup for ndnsd."""

from .config_parser import load_config, parse_config_file, read_certificate
from .config_schema import NdnSdConfig, ServiceConfig, ZeroconfProviderConfig
from .logging_config import init_logging

__all__ = [
    "NdnSdConfig",
    "ServiceConfig",
    "ZeroconfProviderConfig",
    "init_logging",
    "load_config",
    "parse_config_file",
    "read_certificate",
]
