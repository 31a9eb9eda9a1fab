"""CLI utility functions"""

from .output import console, format_deploy_result, format_restore_result
from .progress import UploadProgress, upload_progress

__all__ = [
    # Output
    'console',
    'format_deploy_result',
    'format_restore_result',

    # Progress utilities
    'UploadProgress',
    'upload_progress',
]
