"""
Unit tests for destination parsing (custom_backup/backup/destinations.py).
"""

import dataclasses

import pytest

from custom_backup.backup.destinations import (
    DestinationDescriptor,
    parse_destination,
    parse_destinations,
    DestinationError
)


class TestParseDestination:
    """Test parse_destination positional parsing."""

    def test_parse_basic(self):
        dest = parse_destination('backup@host.example.com:22:/srv/backups')

        assert dest == DestinationDescriptor(
            user='backup',
            host='host.example.com',
            port=22,
            base_path='/srv/backups'
        )

    def test_path_may_contain_colons(self):
        dest = parse_destination('backup@10.1.1.1:2222:/data/2024:archive/x')

        assert dest.host == '10.1.1.1'
        assert dest.port == 2222
        assert dest.base_path == '/data/2024:archive/x'

    def test_relative_path_is_anchored(self):
        dest = parse_destination('backup@host:22:srv/backups/')

        assert dest.base_path == '/srv/backups'

    def test_root_path(self):
        assert parse_destination('backup@host:22:/').base_path == '/'

    def test_surrounding_whitespace_ignored(self):
        assert parse_destination('  backup@host:22:/srv  ').user == 'backup'

    def test_descriptor_is_immutable(self):
        dest = parse_destination('backup@host:22:/srv')

        with pytest.raises(dataclasses.FrozenInstanceError):
            dest.host = 'other'

    def test_label_and_remote_directory(self):
        dest = parse_destination('backup@host:2222:/srv/backups/')

        assert dest.label == 'backup@host:2222:/srv/backups'
        assert dest.remote_directory('10.0.0.5') == '/srv/backups/10.0.0.5_backup'

    @pytest.mark.parametrize('raw,message', [
        ('host:22:/srv', "Missing '@'"),
        ('backup@host', 'Expected user@host:port:/path'),
        ('backup@host:22', 'Expected user@host:port:/path'),
        ('@host:22:/srv', 'Empty user'),
        ('backup@:22:/srv', 'Empty host'),
        ('backup@host:22:', 'Empty path'),
        ('backup@host:ssh:/srv', "Invalid port 'ssh'"),
        ('backup@host::/srv', "Invalid port ''"),
        ('backup@host:0:/srv', 'Port out of range'),
        ('backup@host:70000:/srv', 'Port out of range'),
        ('', 'Empty destination'),
        ('   ', 'Empty destination'),
    ])
    def test_malformed_strings_rejected(self, raw, message):
        with pytest.raises(DestinationError, match=message):
            parse_destination(raw)


class TestParseDestinations:
    """Test batch parsing."""

    def test_keeps_configured_order(self):
        dests = parse_destinations([
            'a@one:22:/x',
            'b@two:22:/y',
            'c@three:22:/z',
        ])

        assert [d.host for d in dests] == ['one', 'two', 'three']

    def test_one_bad_entry_fails_the_batch(self):
        with pytest.raises(DestinationError, match="Missing '@'"):
            parse_destinations(['a@one:22:/x', 'two:22:/y'])

    def test_empty_list_rejected(self):
        with pytest.raises(DestinationError, match="No destinations"):
            parse_destinations([])

    def test_duplicates_rejected(self):
        with pytest.raises(DestinationError, match="Duplicate destination"):
            parse_destinations(['a@one:22:/x', 'a@one:22:/x/'])
