"""Service layer"""

from .config_service import ConfigService, find_config_file
from .deploy_service import DeploymentOrchestrator

__all__ = [
    'ConfigService',
    'find_config_file',
    'DeploymentOrchestrator',
]
