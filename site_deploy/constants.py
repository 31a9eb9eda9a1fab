"""Global constants for site-deploy"""

from enum import Enum

APP_NAME = "site-deploy"

# Project configuration
PROJECT_CONFIG_FILE = ".site-deploy.yaml"

LOG_FORMAT = "%(message)s"


class TransportType(Enum):
    """Remote filesystem transports"""
    SHELL = "shell"
    SFTP = "sftp"
    FTP = "ftp"


class ConfirmMode(Enum):
    """Consent policy before mutating a remote webroot"""
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"


class FTPSecureMode(Enum):
    """TLS mode for the FTP transport"""
    NONE = "none"
    EXPLICIT = "explicit"
    IMPLICIT = "implicit"


# Preserve rules applied when a target does not declare its own
DEFAULT_PRESERVE_PATHS = [
    "uploads/",
    "storage/",
    ".well-known/",
    "robots.txt",
]

# Upload worker pool
DEFAULT_CONCURRENCY = 4
MAX_CONCURRENCY = 16

# Connection defaults
DEFAULT_SSH_PORT = 22
DEFAULT_FTP_PORT = 21
DEFAULT_FTPS_IMPLICIT_PORT = 990
DEFAULT_CONNECT_TIMEOUT = 30  # seconds, used when timeout_ms is 0

# Backups
DEFAULT_BACKUP_RETAIN = 7
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
BACKUP_SUFFIX = ".tar.gz"
RESTORE_ARCHIVE_SUFFIXES = (".zip", ".tar.gz", ".tgz")

# Remote layout
WEBROOT_TEMPLATE = "/home/{user}/web/{domain}/public_html"
BACKUP_DIR_TEMPLATE = "/home/{user}/backups"
REMOTE_TMP_TEMPLATE = "/home/{user}/tmp"
PRE_SNAPSHOT_SUFFIX = ".pre-"
FAILED_SNAPSHOT_SUFFIX = ".failed-"
DOCUMENT_ROOT_NAME = "public_html"

# Health check
DEFAULT_HEALTHCHECK_TIMEOUT = 15  # seconds

# Deploy hooks
DEFAULT_HOOK_TIMEOUT = 600  # seconds, local hooks
HOOK_PRE = "pre"
HOOK_POST = "post"
HOOK_LOCAL = "local"
HOOK_REMOTE = "remote"


# Error codes
class ErrorCode:
    CONFIG_ERROR = "SD001"
    CONSENT_REQUIRED = "SD002"
    TRANSPORT_FAILED = "SD003"
    BACKUP_FAILED = "SD004"
    ROLLBACK_FAILED = "SD005"
    ARTIFACT_INVALID = "SD006"
    DEPLOY_FAILED = "SD007"
    USER_CANCELLED = "SD008"
    HOOK_FAILED = "SD009"


# Exit codes
EXIT_ERROR = 1
EXIT_HEALTHCHECK_FAILED = 2
EXIT_CANCELLED = 130

# Environment variables
ENV_CONFIG_PATH = "SITE_DEPLOY_CONFIG"
ENV_ASSUME_YES = "SITE_DEPLOY_YES"
ENV_FTP_PASSWORD = "SITE_DEPLOY_FTP_PASS"
ENV_SFTP_PASSWORD = "SITE_DEPLOY_SFTP_PASS"

# Display constants
EMOJI_SUCCESS = "✓"
EMOJI_ERROR = "✗"
EMOJI_WARNING = "⚠"
EMOJI_ROCKET = "🚀"

# Dry-run markers
MARK_DELETE = "- rm"
MARK_UPLOAD = "+ up"
MARK_MERGE = "+ merge"
MARK_PRUNE = "- rmdir"
