"""Deploy target configuration models"""

import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..api.exceptions import ConfigError
from ..constants import (
    TransportType,
    ConfirmMode,
    FTPSecureMode,
    DEFAULT_PRESERVE_PATHS,
    DEFAULT_CONCURRENCY,
    MAX_CONCURRENCY,
    DEFAULT_SSH_PORT,
    DEFAULT_FTP_PORT,
    DEFAULT_FTPS_IMPLICIT_PORT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_BACKUP_RETAIN,
    DEFAULT_HEALTHCHECK_TIMEOUT,
    DEFAULT_HOOK_TIMEOUT,
    DOCUMENT_ROOT_NAME,
    WEBROOT_TEMPLATE,
    BACKUP_DIR_TEMPLATE,
    REMOTE_TMP_TEMPLATE,
)
from ..utils.async_utils import clamp_concurrency
from ..utils.formatting import split_list, split_lines


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_int(value: Any, name: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for '{name}': {value!r} (expected an integer)")


def _as_owner(value: Any, user: str) -> Optional[str]:
    """chown target: true means the login user, a string is used as given"""
    if value is None or isinstance(value, bool):
        return f"{user}:{user}" if value and user else None
    text = str(value).strip()
    if text.lower() in ("", "0", "false", "no", "off"):
        return None
    if text.lower() in ("1", "true", "yes", "on"):
        return f"{user}:{user}" if user else None
    return text


def _as_enum(enum_cls, value: Any, name: str, default):
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"Invalid value for '{name}': {value!r} (choose from {choices})")


@dataclass(frozen=True)
class HealthCheckConfig:
    """Post-deploy health check: local command and/or URL check"""

    url: Optional[str] = None
    command: Optional[str] = None
    timeout: float = DEFAULT_HEALTHCHECK_TIMEOUT

    @property
    def enabled(self) -> bool:
        return bool(self.url or self.command)

    def describe(self) -> str:
        parts = []
        if self.command:
            parts.append(f"cmd: {self.command}")
        if self.url:
            parts.append(f"url: {self.url}")
        return ", ".join(parts) if parts else "none"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'HealthCheckConfig':
        data = data or {}
        timeout = data.get('timeout')
        return cls(
            url=data.get('url') or None,
            command=data.get('command') or data.get('cmd') or None,
            timeout=float(timeout) if timeout else DEFAULT_HEALTHCHECK_TIMEOUT,
        )


@dataclass(frozen=True)
class HookConfig:
    """Commands run before and after a deploy, on this machine and on the server

    Pre hooks run before anything on the server changes; post hooks run
    once the deploy has finished, also after a rollback. With `strict` the
    first failing command aborts the run.
    """

    pre_local: Tuple[str, ...] = ()
    pre_remote: Tuple[str, ...] = ()
    post_local: Tuple[str, ...] = ()
    post_remote: Tuple[str, ...] = ()
    strict: bool = True
    timeout: float = DEFAULT_HOOK_TIMEOUT

    @property
    def has_remote(self) -> bool:
        return bool(self.pre_remote or self.post_remote)

    def commands(self, when: str, where: str) -> Tuple[str, ...]:
        return getattr(self, f"{when}_{where}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'HookConfig':
        data = data or {}
        timeout = data.get('timeout')
        return cls(
            pre_local=tuple(split_lines(data.get('pre_local'))),
            pre_remote=tuple(split_lines(data.get('pre_remote'))),
            post_local=tuple(split_lines(data.get('post_local'))),
            post_remote=tuple(split_lines(data.get('post_remote'))),
            strict=_as_bool(data.get('strict'), True),
            timeout=float(timeout) if timeout else DEFAULT_HOOK_TIMEOUT,
        )


@dataclass(frozen=True)
class RollbackPolicy:
    """What happens to the snapshots around a shell deploy"""

    rollback_on_fail: bool = True
    keep_pre_snapshot: bool = True
    keep_failed: bool = True


@dataclass(frozen=True)
class DeployTarget:
    """A fully resolved deployment target, immutable for one run"""

    transport: TransportType
    host: str
    user: str
    webroot: str
    domain: Optional[str] = None
    preserve: Tuple[str, ...] = tuple(DEFAULT_PRESERVE_PATHS)
    concurrency: int = DEFAULT_CONCURRENCY
    timeout_ms: int = 0
    confirm: ConfirmMode = ConfirmMode.AUTO

    # Credentials / connection
    password: Optional[str] = None
    ssh_key: Optional[str] = None
    port: int = DEFAULT_SSH_PORT
    secure: FTPSecureMode = FTPSecureMode.EXPLICIT

    # Shell-only layout
    backup_dir: Optional[str] = None
    backup_prefix: Optional[str] = None
    backup_retain: int = DEFAULT_BACKUP_RETAIN
    remote_tmp: Optional[str] = None

    healthcheck: HealthCheckConfig = field(default_factory=HealthCheckConfig)
    hooks: HookConfig = field(default_factory=HookConfig)
    rollback: RollbackPolicy = field(default_factory=RollbackPolicy)
    # "user:group" for a best-effort `chown -R` of the webroot (shell)
    chown: Optional[str] = None

    def __post_init__(self):
        """Validate target configuration"""
        if not self.host:
            raise ConfigError(f"{self.transport.value} target requires 'host'")
        if not self.user:
            raise ConfigError(f"{self.transport.value} target requires 'user'")
        if not self.webroot:
            raise ConfigError(
                f"Cannot resolve webroot for {self.transport.value} target: "
                f"set 'webroot' explicitly"
                + ("" if self.transport == TransportType.FTP else " or provide 'domain'")
            )
        if self.webroot.rstrip("/") == "":
            raise ConfigError("Refusing to use '/' as webroot")
        if self.transport == TransportType.SHELL and not self.webroot.startswith("/"):
            raise ConfigError(f"Shell target webroot must be an absolute path: {self.webroot}")
        if self.transport == TransportType.FTP and not self.password:
            raise ConfigError("FTP target requires a password (config, --password or SITE_DEPLOY_FTP_PASS)")
        if not 1 <= self.concurrency <= MAX_CONCURRENCY:
            raise ConfigError(f"Concurrency must be between 1 and {MAX_CONCURRENCY}")
        if self.backup_retain < 1:
            raise ConfigError("backup_retain must be at least 1")
        if self.timeout_ms < 0:
            raise ConfigError("timeout must not be negative")
        if self.transport != TransportType.SHELL:
            if self.hooks.has_remote:
                raise ConfigError(f"Remote hooks need the shell transport, not {self.transport.value}")
            if self.chown:
                raise ConfigError(f"chown needs the shell transport, not {self.transport.value}")

    @property
    def timeout(self) -> float:
        """Per-connection/command timeout in seconds"""
        if self.timeout_ms:
            return self.timeout_ms / 1000.0
        return float(DEFAULT_CONNECT_TIMEOUT)

    @property
    def webroot_parent(self) -> str:
        return posixpath.dirname(self.webroot) or "/"

    @property
    def webroot_name(self) -> str:
        return posixpath.basename(self.webroot)

    @property
    def supports_snapshots(self) -> bool:
        """Only the shell transport can back up, rename and roll back"""
        return self.transport == TransportType.SHELL

    def get_display_info(self) -> str:
        """Get display information for the target"""
        return f"{self.user}@{self.host}:{self.port}"

    @classmethod
    def from_dict(cls, transport, data: Dict[str, Any]) -> 'DeployTarget':
        """Create a target from merged configuration values

        Derives every default the remote layout convention implies:
        webroot from user and domain (shell/SFTP only), backup directory,
        backup prefix, remote temp directory and port.

        Raises:
            ConfigError: If a field is missing or invalid
        """
        transport = _as_enum(TransportType, transport, 'transport', None)
        if transport is None:
            raise ConfigError("Transport is required (shell, sftp or ftp)")

        data = {key: value for key, value in (data or {}).items() if value is not None}
        host = str(data.get('host') or "").strip()
        user = str(data.get('user') or "").strip()
        domain = str(data.get('domain') or "").strip() or None

        webroot = str(data.get('webroot') or "").strip()
        if not webroot and transport != TransportType.FTP and user and domain:
            webroot = WEBROOT_TEMPLATE.format(user=user, domain=domain)
        if len(webroot) > 1:
            webroot = webroot.rstrip("/")

        secure = _as_enum(FTPSecureMode, data.get('secure'), 'secure', FTPSecureMode.EXPLICIT)
        if transport == TransportType.FTP:
            default_port = (DEFAULT_FTPS_IMPLICIT_PORT if secure == FTPSecureMode.IMPLICIT
                            else DEFAULT_FTP_PORT)
            port = _as_int(data.get('port'), 'port', default_port)
        else:
            port = _as_int(data.get('ssh_port', data.get('port')), 'port', DEFAULT_SSH_PORT)

        preserve = split_list(data['preserve']) if 'preserve' in data else list(DEFAULT_PRESERVE_PATHS)

        backup_dir = data.get('backup_dir') or (BACKUP_DIR_TEMPLATE.format(user=user) if user else None)
        backup_prefix = data.get('backup_prefix')
        if not backup_prefix:
            if domain:
                backup_prefix = f"{domain}-{DOCUMENT_ROOT_NAME}"
            elif webroot:
                backup_prefix = posixpath.basename(webroot)
        remote_tmp = data.get('remote_tmp') or (REMOTE_TMP_TEMPLATE.format(user=user) if user else None)

        concurrency = clamp_concurrency(
            _as_int(data.get('concurrency'), 'concurrency', DEFAULT_CONCURRENCY),
            DEFAULT_CONCURRENCY, MAX_CONCURRENCY,
        )

        healthcheck = data.get('healthcheck')
        if isinstance(healthcheck, HealthCheckConfig):
            health = healthcheck
        else:
            health = HealthCheckConfig.from_dict(healthcheck)

        hooks = data.get('hooks')
        if not isinstance(hooks, HookConfig):
            hooks = HookConfig.from_dict(hooks)

        chown = _as_owner(data.get('chown'), user)

        return cls(
            transport=transport,
            host=host,
            user=user,
            webroot=webroot,
            domain=domain,
            preserve=tuple(preserve),
            concurrency=concurrency,
            timeout_ms=_as_int(data.get('timeout_ms', data.get('timeout')), 'timeout', 0),
            confirm=_as_enum(ConfirmMode, data.get('confirm'), 'confirm', ConfirmMode.AUTO),
            password=data.get('password') or None,
            ssh_key=data.get('ssh_key') or None,
            port=port,
            secure=secure,
            backup_dir=backup_dir,
            backup_prefix=backup_prefix,
            backup_retain=_as_int(data.get('backup_retain'), 'backup_retain', DEFAULT_BACKUP_RETAIN),
            remote_tmp=remote_tmp,
            healthcheck=health,
            hooks=hooks,
            chown=chown,
            rollback=RollbackPolicy(
                rollback_on_fail=_as_bool(data.get('rollback_on_fail'), True),
                keep_pre_snapshot=_as_bool(data.get('keep_pre_snapshot'), True),
                keep_failed=_as_bool(data.get('keep_failed'), True),
            ),
        )
