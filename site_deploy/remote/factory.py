"""Remote filesystem factory"""

from typing import Callable, Dict, List

from .base import RemoteFS
from .ftp import FTPRemoteFS
from .sftp import SFTPRemoteFS
from .shell import ShellRemoteFS, SSHShell
from ..constants import TransportType
from ..models.config import DeployTarget


def _create_shell(target: DeployTarget) -> RemoteFS:
    shell = SSHShell(
        host=target.host,
        user=target.user,
        port=target.port,
        password=target.password,
        key_path=target.ssh_key,
        connect_timeout=target.timeout,
        command_timeout=target.timeout_ms / 1000.0 if target.timeout_ms else None,
    )
    return ShellRemoteFS(shell, target.webroot, remote_tmp=target.remote_tmp, timeout=target.timeout)


def _create_sftp(target: DeployTarget) -> RemoteFS:
    return SFTPRemoteFS(
        host=target.host,
        user=target.user,
        root=target.webroot,
        port=target.port,
        password=target.password,
        key_path=target.ssh_key,
        timeout=target.timeout,
    )


def _create_ftp(target: DeployTarget) -> RemoteFS:
    return FTPRemoteFS(
        host=target.host,
        user=target.user,
        password=target.password,
        root=target.webroot,
        port=target.port,
        secure=target.secure,
        concurrency=target.concurrency,
        timeout=target.timeout,
    )


class RemoteFSFactory:
    """Factory for creating remote filesystem adapters"""

    # Registry of transports
    _builders: Dict[TransportType, Callable[[DeployTarget], RemoteFS]] = {
        TransportType.SHELL: _create_shell,
        TransportType.SFTP: _create_sftp,
        TransportType.FTP: _create_ftp,
    }

    @classmethod
    def create(cls, target: DeployTarget) -> RemoteFS:
        """Create a remote filesystem bound to the target's webroot

        Raises:
            ValueError: If the transport is not supported
        """
        if target.transport not in cls._builders:
            raise ValueError(f"Unsupported transport: {target.transport.value}")
        return cls._builders[target.transport](target)

    @classmethod
    def register(cls, transport: TransportType, builder: Callable[[DeployTarget], RemoteFS]):
        """Register a builder for a transport type"""
        cls._builders[transport] = builder

    @classmethod
    def get_supported_types(cls) -> List[str]:
        return [t.value for t in cls._builders.keys()]
