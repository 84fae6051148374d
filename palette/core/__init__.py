"""
Palette Core Module

Contains core systems including configuration, constants, exceptions,
logging and retry.
"""

from .config import PaletteConfig, load_config, get_config, set_config
from .constants import *
from .exceptions import *
from .logging_config import setup_logging, get_logger
from .retry import RetryConfig, retry_async_call, async_retry

__all__ = [
    'PaletteConfig',
    'load_config',
    'get_config',
    'set_config',
    'setup_logging',
    'get_logger',
    'RetryConfig',
    'retry_async_call',
    'async_retry',
]
