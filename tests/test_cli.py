"""Tests for CLI module."""

import json
from unittest.mock import patch

import pytest
import yaml

from cli import main


@pytest.fixture
def cli_env(compiler_home):
    """Process environment for compile runs against the test compiler home."""
    return {
        'CF_STACK': 'cflinuxfs4',
        'BUILDPACK_DIR': str(compiler_home),
        'PATH': '/usr/bin:/bin',
    }


class TestUsage:
    """Top-level dispatch."""

    def test_no_args_prints_usage(self, capsys):
        assert main([]) == 0
        assert 'Usage: staticfile-compiler <command>' in capsys.readouterr().out

    def test_unknown_command(self, capsys):
        assert main(['deploy']) == 1
        assert "Unknown command 'deploy'" in capsys.readouterr().out


class TestDetectCommand:
    """detect exit codes and tag."""

    def test_applicable(self, app_dir, capsys):
        assert main(['detect', str(app_dir)]) == 0
        assert capsys.readouterr().out == 'staticfile\n'

    def test_not_applicable(self, tmp_path, capsys):
        assert main(['detect', str(tmp_path)]) == 1
        assert capsys.readouterr().out == 'no\n'

    def test_fallback(self, tmp_path, capsys):
        (tmp_path / 'index.html').write_text('hi')
        assert main(['detect', str(tmp_path), '--fallback']) == 0
        assert capsys.readouterr().out == 'staticfile\n'


class TestCompileCommand:
    """compile end to end through the CLI."""

    def test_success_logs_to_stdout(self, app_dir, cache_dir, cli_env, capsys):
        with patch.dict('os.environ', cli_env, clear=True):
            rc = main(['compile', str(app_dir), str(cache_dir)])
        out = capsys.readouterr().out
        assert rc == 0
        assert '-----> Staticfile Buildpack version 9.9.9' in out
        assert '-----> Root folder' in out

    def test_unsupported_stack_exit_code(self, app_dir, cache_dir, cli_env, capsys):
        cli_env['CF_STACK'] = 'windows2016'
        with patch.dict('os.environ', cli_env, clear=True):
            rc = main(['compile', str(app_dir), str(cache_dir)])
        assert rc == 44
        assert 'not supported' in capsys.readouterr().out

    def test_strict_flag(self, app_dir, cache_dir, cli_env, capsys):
        (app_dir / 'Staticfile').unlink()
        with patch.dict('os.environ', cli_env, clear=True):
            rc = main(['compile', str(app_dir), str(cache_dir), '--strict'])
        assert rc == 10

    def test_json_output(self, app_dir, cache_dir, cli_env, capsys):
        with patch.dict('os.environ', cli_env, clear=True):
            rc = main(['compile', str(app_dir), str(cache_dir), '--json-output'])
        captured = capsys.readouterr()
        data = json.loads(captured.out)
        assert rc == 0
        assert data['success'] is True
        assert data['state'] == 'done'
        assert data['diagnostics'][0] == '-----> Staticfile Buildpack version 9.9.9'
        # Logs go to stderr in JSON mode
        assert '-----> Staticfile Buildpack version 9.9.9' in captured.err

    def test_json_output_on_failure(self, app_dir, cache_dir, cli_env, capsys):
        (app_dir / 'Staticfile').write_text('root: nope\n')
        with patch.dict('os.environ', cli_env, clear=True):
            rc = main(['compile', str(app_dir), str(cache_dir), '--json-output'])
        data = json.loads(capsys.readouterr().out)
        assert rc == 12
        assert data['error']['kind'] == 'InvalidRoot'
        assert 'nope' in data['error']['message']

    def test_bad_environment(self, app_dir, cache_dir, cli_env, capsys):
        cli_env['STATICFILE_HOOK_TIMEOUT'] = 'forever'
        with patch.dict('os.environ', cli_env, clear=True):
            rc = main(['compile', str(app_dir), str(cache_dir)])
        assert rc == 1
        assert 'STATICFILE_HOOK_TIMEOUT' in capsys.readouterr().out

    def test_creates_cache_dir(self, app_dir, tmp_path, cli_env):
        cache = tmp_path / 'new-cache'
        with patch.dict('os.environ', cli_env, clear=True):
            assert main(['compile', str(app_dir), str(cache)]) == 0
        assert cache.is_dir()


class TestReleaseCommand:
    """release YAML."""

    def test_default_process(self, app_dir, capsys):
        assert main(['release', str(app_dir)]) == 0
        data = yaml.safe_load(capsys.readouterr().out)
        assert data == {'default_process_types': {'web': '$HOME/boot.sh'}}
