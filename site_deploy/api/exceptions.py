"""Exception definitions for site-deploy API"""

from ..constants import ErrorCode


class SiteDeployError(Exception):
    """Base exception for site-deploy"""

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.error_code = error_code


class ConfigError(SiteDeployError):
    """Missing or invalid target configuration"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIG_ERROR)


class ArtifactError(ConfigError):
    """Release artifact or backup archive cannot be used"""

    def __init__(self, message: str):
        super().__init__(message)
        self.error_code = ErrorCode.ARTIFACT_INVALID


class ConsentError(SiteDeployError):
    """Mutation requested without operator consent"""

    def __init__(self, message: str = None):
        if message is None:
            message = (
                "Non-interactive session and no consent given.\n"
                "Pass --yes (or --force), or set SITE_DEPLOY_YES=1 to deploy without a prompt."
            )
        super().__init__(message, ErrorCode.CONSENT_REQUIRED)


class UserCancelledError(ConsentError):
    """User cancelled the operation"""

    def __init__(self):
        super().__init__("Operation cancelled by user")
        self.error_code = ErrorCode.USER_CANCELLED


class TransportError(SiteDeployError):
    """Connection, authentication, listing or transfer failure"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.TRANSPORT_FAILED)


class BackupError(SiteDeployError):
    """Remote backup could not be created"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.BACKUP_FAILED)


class DeployError(SiteDeployError):
    """Deployment operation error"""

    def __init__(self, message: str, error_code: str = ErrorCode.DEPLOY_FAILED):
        super().__init__(message, error_code)


class RollbackError(DeployError):
    """Snapshot swap failed; the webroot needs manual attention"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.ROLLBACK_FAILED)


class HookError(DeployError):
    """A strict pre- or post-deploy hook exited non-zero"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.HOOK_FAILED)
