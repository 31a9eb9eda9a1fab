# site_deploy/cli/commands/__init__.py
"""CLI commands"""

from . import upload
from . import restore

__all__ = [
    "upload",
    "restore",
]
