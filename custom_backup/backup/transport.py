"""
SSH/SFTP transport to backup destinations.

Handles, per destination:
- Connecting with key-based authentication only
- Creating the remote archive directory
- Resumable archive upload
- Listing and deleting remote archives for retention
"""

import os
import stat
import socket
import logging
import posixpath
from datetime import datetime
from fnmatch import fnmatch
from pathlib import Path
from typing import Optional, List, Dict, Any

import paramiko
from paramiko import SSHClient, AutoAddPolicy

from .destinations import DestinationDescriptor


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB


class TransportError(Exception):
    """Base class for destination transport failures."""
    pass


class DestinationUnreachableError(TransportError):
    """Raised when the destination cannot be reached or the SSH session fails."""
    pass


class AuthenticationFailedError(TransportError):
    """Raised when key-based authentication is rejected."""
    pass


class TransferFailedError(TransportError):
    """Raised when a remote file operation fails."""
    pass


class SSHTransport:
    """
    Transport for one destination over SSH/SFTP.

    Authentication is by key only. No password is ever sent, so a host that
    would ask for one fails with AuthenticationFailedError instead of
    prompting.
    """

    def __init__(self, destination: DestinationDescriptor, key_filename: Optional[str] = None, timeout: int = 30):
        """
        Initialize SSH transport.

        Args:
            destination: Parsed destination
            key_filename: Private key file (agent and default keys when None)
            timeout: Connect/banner/auth timeout in seconds
        """
        self.destination = destination
        self.key_filename = key_filename
        self.timeout = timeout

        self.ssh_client = None
        self.sftp_client = None

    def __enter__(self) -> 'SSHTransport':
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def connect(self):
        """
        Establish SSH and SFTP sessions.

        Raises:
            AuthenticationFailedError: If the key is rejected
            DestinationUnreachableError: If the connection fails
        """
        host = self.destination.host
        port = self.destination.port

        connect_kwargs = {
            'hostname': host,
            'port': port,
            'username': self.destination.user,
            'timeout': self.timeout,
            'banner_timeout': self.timeout,
            'auth_timeout': self.timeout,
        }

        if self.key_filename:
            key_path = Path(self.key_filename).expanduser()
            connect_kwargs['key_filename'] = str(key_path)
            connect_kwargs['allow_agent'] = False
            connect_kwargs['look_for_keys'] = False
        else:
            connect_kwargs['allow_agent'] = True
            connect_kwargs['look_for_keys'] = True

        try:
            self.ssh_client = SSHClient()
            self.ssh_client.load_system_host_keys()
            self.ssh_client.set_missing_host_key_policy(AutoAddPolicy())
            self.ssh_client.connect(**connect_kwargs)
            self.sftp_client = self.ssh_client.open_sftp()

        except paramiko.AuthenticationException as e:
            self.close()
            raise AuthenticationFailedError(f"SSH authentication failed for {self.destination.user}@{host}: {e}")
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            self.close()
            raise DestinationUnreachableError(f"Failed to connect to {host}:{port}: {e}")

        logger.info(f"Connected to {host}:{port}")

    def _require_sftp(self):
        if self.sftp_client is None:
            raise TransferFailedError(f"Not connected to {self.destination.host}")
        return self.sftp_client

    def ensure_directory(self, remote_dir: str):
        """
        Create remote_dir and its parents if missing (mkdir -p).

        Raises:
            TransferFailedError: If a component cannot be created or is not a directory
        """
        sftp = self._require_sftp()
        current = '/'

        for part in [p for p in remote_dir.split('/') if p]:
            current = posixpath.join(current, part)
            try:
                attrs = sftp.stat(current)
            except IOError:
                try:
                    sftp.mkdir(current)
                    logger.debug(f"Created remote directory {current}")
                except IOError as e:
                    raise TransferFailedError(f"Failed to create remote directory {current}: {e}")
                continue

            if not stat.S_ISDIR(attrs.st_mode):
                raise TransferFailedError(f"Remote path is not a directory: {current}")

    def upload(self, local_path: str, remote_dir: str) -> str:
        """
        Upload a file into remote_dir, resuming an interrupted earlier attempt.

        Data is written to ``.<name>.part`` and renamed over ``<name>`` once
        the full size has arrived, so the final name only ever holds a
        complete archive.

        Args:
            local_path: Archive to upload
            remote_dir: Existing remote directory

        Returns:
            Remote path of the uploaded file

        Raises:
            TransferFailedError: If the upload fails
        """
        sftp = self._require_sftp()

        if not os.path.exists(local_path):
            raise TransferFailedError(f"Local file not found: {local_path}")

        filename = os.path.basename(local_path)
        remote_path = posixpath.join(remote_dir, filename)
        partial_path = posixpath.join(remote_dir, f".{filename}.part")
        local_size = os.path.getsize(local_path)

        try:
            offset = self._resume_offset(local_path, partial_path, local_size)
            if offset:
                logger.info(f"Resuming upload of {filename} at byte {offset}")

            with open(local_path, 'rb') as src, sftp.open(partial_path, 'r+b' if offset else 'wb') as dst:
                src.seek(offset)
                dst.seek(offset)
                while True:
                    data = src.read(CHUNK_SIZE)
                    if not data:
                        break
                    dst.write(data)

            remote_size = sftp.stat(partial_path).st_size
            if remote_size != local_size:
                raise TransferFailedError(
                    f"Size mismatch after upload of {filename}: local {local_size}, remote {remote_size}"
                )

            sftp.posix_rename(partial_path, remote_path)

        except TransferFailedError:
            raise
        except (IOError, paramiko.SSHException, socket.timeout) as e:
            raise TransferFailedError(f"Failed to upload {filename} to {self.destination.host}: {e}")

        logger.info(f"Uploaded {filename} to {self.destination.host}:{remote_path} ({local_size} bytes)")
        return remote_path

    def _resume_offset(self, local_path: str, partial_path: str, local_size: int) -> int:
        """
        Size of a usable partial upload, or 0.

        A partial file is only resumed if its bytes are a prefix of the local
        archive. Anything else is a leftover from a different archive and is
        removed.
        """
        try:
            partial_size = self.sftp_client.stat(partial_path).st_size
        except IOError:
            return 0

        if partial_size == 0:
            return 0

        if partial_size > local_size or not self._is_prefix(local_path, partial_path, partial_size):
            logger.info(f"Discarding stale partial upload {partial_path}")
            self.sftp_client.remove(partial_path)
            return 0

        return partial_size

    def _is_prefix(self, local_path: str, partial_path: str, length: int) -> bool:
        """Compare the first length bytes of the local file and the remote partial file."""
        with open(local_path, 'rb') as local, self.sftp_client.open(partial_path, 'rb') as remote:
            remaining = length
            while remaining > 0:
                size = min(CHUNK_SIZE, remaining)
                if local.read(size) != remote.read(size):
                    return False
                remaining -= size
        return True

    def list_files(self, remote_dir: str, pattern: str = '*') -> List[Dict[str, Any]]:
        """
        List regular files in remote_dir matching pattern.

        Returns:
            List of dicts with 'name', 'path', 'modified' and 'size' keys

        Raises:
            TransferFailedError: If listing fails
        """
        sftp = self._require_sftp()

        try:
            entries = sftp.listdir_attr(remote_dir)
        except (IOError, paramiko.SSHException) as e:
            raise TransferFailedError(f"Failed to list {remote_dir}: {e}")

        files = []
        for entry in entries:
            if not stat.S_ISREG(entry.st_mode or 0):
                continue
            if not fnmatch(entry.filename, pattern):
                continue
            files.append({
                'name': entry.filename,
                'path': posixpath.join(remote_dir, entry.filename),
                'modified': datetime.fromtimestamp(entry.st_mtime),
                'size': entry.st_size
            })

        return files

    def delete(self, remote_path: str):
        """
        Delete a remote file.

        Raises:
            TransferFailedError: If deletion fails
        """
        sftp = self._require_sftp()

        try:
            sftp.remove(remote_path)
        except (IOError, paramiko.SSHException) as e:
            raise TransferFailedError(f"Failed to delete {remote_path}: {e}")

    def close(self):
        """Close SFTP/SSH connections."""
        if self.sftp_client:
            try:
                self.sftp_client.close()
            except Exception as e:
                logger.debug(f"Error closing SFTP session: {e}")
            self.sftp_client = None

        if self.ssh_client:
            try:
                self.ssh_client.close()
            except Exception as e:
                logger.debug(f"Error closing SSH connection: {e}")
            self.ssh_client = None
