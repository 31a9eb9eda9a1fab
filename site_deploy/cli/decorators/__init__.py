# site_deploy/cli/decorators/__init__.py
"""CLI decorators"""

from .options import target_options, collect_overrides, handle_errors

__all__ = [
    'target_options',
    'collect_overrides',
    'handle_errors',
]
