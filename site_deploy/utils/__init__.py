"""Utility functions for site-deploy"""

from .async_utils import run_async, run_bounded, sync_to_async, clamp_concurrency
from .formatting import format_size, format_duration, pluralize, split_list, split_lines

__all__ = [
    'run_async',
    'run_bounded',
    'sync_to_async',
    'clamp_concurrency',
    'format_size',
    'format_duration',
    'pluralize',
    'split_list',
    'split_lines',
]
