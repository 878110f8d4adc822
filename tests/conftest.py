"""
Shared pytest fixtures for custom-backup tests.

This module provides fixtures for:
- Test configuration pointing at temporary directories
- Source trees to back up
- A fake SFTP server backed by a temporary directory
- A patched paramiko SSHClient that hands out the fake SFTP client
- Parsing of status documents into samples
"""

import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import paramiko
import pytest
from prometheus_client.parser import text_string_to_metric_families

from custom_backup.config import load_config


HOST_IP = '10.0.0.5'


class FakeSFTPClient:
    """
    Minimal stand-in for paramiko.SFTPClient.

    Remote paths are mapped below ``root`` on the local filesystem so tests
    can inspect uploads and control modification times.
    """

    def __init__(self, root: Path):
        self.root = root
        self.removed = []
        self.closed = False

    def local_path(self, remote_path: str) -> Path:
        return self.root / remote_path.lstrip('/')

    def stat(self, path):
        return paramiko.SFTPAttributes.from_stat(os.stat(self.local_path(path)))

    def mkdir(self, path, mode=0o777):
        os.mkdir(self.local_path(path), mode)

    def open(self, path, mode='r'):
        return open(self.local_path(path), mode)

    def posix_rename(self, oldpath, newpath):
        os.replace(self.local_path(oldpath), self.local_path(newpath))

    def listdir_attr(self, path='.'):
        directory = self.local_path(path)
        return [
            paramiko.SFTPAttributes.from_stat(os.stat(directory / name), filename=name)
            for name in sorted(os.listdir(directory))
        ]

    def remove(self, path):
        self.removed.append(path)
        os.remove(self.local_path(path))

    def close(self):
        self.closed = True


@pytest.fixture
def remote_root(tmp_path):
    """Directory playing the role of every destination's filesystem."""
    root = tmp_path / 'remote'
    root.mkdir()
    return root


@pytest.fixture
def fake_sftp(remote_root):
    return FakeSFTPClient(remote_root)


@pytest.fixture
def mock_ssh_client(fake_sftp):
    """
    Patch paramiko SSHClient in the transport module.

    Connections to hosts named ``down.example.com`` fail with a socket error,
    every other host gets the shared fake SFTP client.
    """
    with patch('custom_backup.backup.transport.SSHClient') as mock_ssh_class:
        mock_ssh = MagicMock()
        mock_ssh_class.return_value = mock_ssh

        def connect(**kwargs):
            if kwargs['hostname'] == 'down.example.com':
                raise OSError('No route to host')

        mock_ssh.connect.side_effect = connect
        mock_ssh.open_sftp.return_value = fake_sftp

        yield mock_ssh


@pytest.fixture
def temp_files(tmp_path):
    """
    Create a source tree to back up.

    Creates:
    - data/app.conf
    - data/app.log              (matched by '*.log')
    - data/nested/notes.txt
    - data/nested/cache/blob.bin (matched by 'cache')
    - data/nested/debug.log     (matched by '*.log')
    """
    data = tmp_path / 'sources' / 'data'
    (data / 'nested' / 'cache').mkdir(parents=True)

    (data / 'app.conf').write_text('listen 80')
    (data / 'app.log').write_text('log line')
    (data / 'nested' / 'notes.txt').write_text('notes')
    (data / 'nested' / 'cache' / 'blob.bin').write_bytes(b'\x00' * 64)
    (data / 'nested' / 'debug.log').write_text('debug')

    return data


@pytest.fixture
def app_config(tmp_path, temp_files):
    """
    Testing configuration with every directory under tmp_path.

    Backs up temp_files plus one missing path, to two reachable destinations.
    """
    settings = load_config('testing')
    settings.update({
        'SOURCE_PATHS': [str(temp_files), str(tmp_path / 'sources' / 'missing.conf')],
        'EXCLUDE_PATTERNS': ['*.log', 'cache'],
        'DESTINATIONS': [
            'backup@host-a.example.com:22:/srv/backups',
            'backup@host-b.example.com:2222:/mnt/offsite',
        ],
        'TEMP_DIR': str(tmp_path / 'staging'),
        'METRICS_DIR': str(tmp_path / 'metrics'),
        'SCRIPT_VERSION': '1.4.0',
        'RETENTION_DAYS': 0,
    })
    return settings


@pytest.fixture
def host_ip():
    return HOST_IP


class MetricSamples:
    """
    Samples of a status document, independent of label order and number
    formatting.
    """

    def __init__(self, text: str):
        self.samples = [
            (sample.name, sample.labels, sample.value)
            for family in text_string_to_metric_families(text)
            for sample in family.samples
        ]

    def names(self):
        return {name for name, _, _ in self.samples}

    def count(self, name):
        return sum(1 for sample_name, _, _ in self.samples if sample_name == name)

    def get(self, name, **labels):
        """Value of the sample with exactly these labels, or None."""
        for sample_name, sample_labels, value in self.samples:
            if sample_name == name and sample_labels == labels:
                return value
        return None


@pytest.fixture
def metric_samples():
    return MetricSamples
