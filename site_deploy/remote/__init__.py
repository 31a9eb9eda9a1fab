# site_deploy/remote/__init__.py
"""Remote filesystem transports for site-deploy"""

from .base import RemoteFS, RemoteFile, RemoteTree
from .shell import RemoteShell, SSHShell, ShellRemoteFS, CommandResult
from .sftp import SFTPRemoteFS
from .ftp import FTPRemoteFS
from .factory import RemoteFSFactory

__all__ = [
    'RemoteFS',
    'RemoteFile',
    'RemoteTree',
    'RemoteShell',
    'SSHShell',
    'ShellRemoteFS',
    'CommandResult',
    'SFTPRemoteFS',
    'FTPRemoteFS',
    'RemoteFSFactory',
]
