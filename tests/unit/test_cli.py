"""
Unit tests for the command line entry point (custom_backup/cli.py).
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from custom_backup.cli import main, build_parser, EXIT_PRE_RUN_FAILURE
from custom_backup.config import ConfigError
from custom_backup.utils.identity import IdentityError


class TestMain:
    """Test exit status mapping."""

    @patch('custom_backup.cli.create_coordinator')
    def test_returns_run_exit_code(self, mock_create):
        coordinator = MagicMock()
        coordinator.exit_code = 1
        mock_create.return_value = coordinator

        assert main(['--env', 'testing', '--config', '/etc/custom-backup.json']) == 1

        mock_create.assert_called_once_with('testing', '/etc/custom-backup.json')
        coordinator.execute.assert_called_once()

    @patch('custom_backup.cli.create_coordinator')
    def test_defaults_to_environment_profile(self, mock_create):
        mock_create.return_value = MagicMock(exit_code=0)

        assert main([]) == 0

        mock_create.assert_called_once_with(None, None)

    @patch('custom_backup.cli.create_coordinator', side_effect=ConfigError("METRICS_DIR is required"))
    def test_configuration_error(self, mock_create, capsys):
        assert main([]) == EXIT_PRE_RUN_FAILURE

        assert 'METRICS_DIR is required' in capsys.readouterr().err

    @patch('custom_backup.cli.create_coordinator', side_effect=IdentityError("No non-loopback IPv4 address found"))
    def test_identity_error(self, mock_create):
        assert main([]) == EXIT_PRE_RUN_FAILURE

    def test_unknown_profile_rejected_by_parser(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['--env', 'staging'])


class TestEndToEnd:
    """Run through the real factory with host identity pinned."""

    def test_full_run(self, mock_ssh_client, tmp_path, config_json):
        exit_code = main(['--env', 'testing', '--config', config_json])

        assert exit_code == 0
        assert (tmp_path / 'metrics' / 'custom_backup.prom').exists()


@pytest.fixture
def config_json(app_config, tmp_path):
    path = tmp_path / 'backup.json'
    keys = ('SOURCE_PATHS', 'EXCLUDE_PATTERNS', 'DESTINATIONS', 'TEMP_DIR', 'METRICS_DIR')
    data = {key.lower(): app_config[key] for key in keys}
    data['host_ip'] = '10.0.0.5'
    path.write_text(json.dumps(data))
    return str(path)
