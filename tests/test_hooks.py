"""Tests for hooks.py - pre/post compile hook execution.

Hooks run as real /bin/sh scripts in tmp_path.
"""

import logging
import subprocess
from unittest.mock import patch

import pytest

from errors import HookFailure
from hooks import POST_COMPILE, PRE_COMPILE, Hook, HookRunner, discover_hooks


def _write_hook(path, body, executable=True):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n")
    if executable:
        path.chmod(0o755)
    return path


@pytest.fixture
def hooks_dir(app_dir):
    return app_dir / '.staticfile' / 'hooks'


@pytest.fixture
def runner(app_dir, cache_dir):
    return HookRunner(app_dir, cache_dir, timeout=10, environ={'PATH': '/usr/bin:/bin'})


class TestDiscoverHooks:
    """Hook lookup order."""

    def test_none(self, app_dir):
        assert discover_hooks(app_dir, PRE_COMPILE) == []

    def test_order(self, app_dir, hooks_dir, tmp_path):
        compiler = tmp_path / 'compiler'
        _write_hook(compiler / 'hooks' / 'pre_compile.d' / '10-vendor', 'true')
        _write_hook(hooks_dir / 'pre_compile', 'true')
        _write_hook(hooks_dir / 'pre_compile.d' / '20-b', 'true')
        _write_hook(hooks_dir / 'pre_compile.d' / '10-a', 'true')
        _write_hook(hooks_dir / 'pre_compile.d' / '.hidden', 'true')
        _write_hook(hooks_dir / 'pre_compile.d' / '10-a~', 'true')
        _write_hook(hooks_dir / 'post_compile', 'true')

        names = [h.name for h in discover_hooks(app_dir, PRE_COMPILE, compiler)]
        assert names == [
            'compiler/pre_compile.d/10-vendor',
            'pre_compile',
            'pre_compile.d/10-a',
            'pre_compile.d/20-b',
        ]

    def test_unknown_point(self, app_dir):
        with pytest.raises(ValueError):
            discover_hooks(app_dir, 'mid_compile')

    def test_non_executable_runs_through_sh(self, hooks_dir):
        script = _write_hook(hooks_dir / 'pre_compile', 'true', executable=False)
        assert Hook('pre_compile', script).command() == ['/bin/sh', str(script)]


class TestHookRunner:
    """Execution, output capture and failures."""

    def test_no_hooks_is_a_no_op(self, runner):
        assert runner.run_point(PRE_COMPILE) == []

    def test_output_prefixed_in_log(self, runner, hooks_dir, caplog):
        caplog.set_level(logging.INFO)
        _write_hook(hooks_dir / 'pre_compile', 'echo building\necho oops >&2')
        results = runner.run_point(PRE_COMPILE)

        assert results[0].returncode == 0
        assert results[0].output == ['building', 'oops']
        messages = [r.getMessage() for r in caplog.records]
        assert '[pre_compile] building' in messages
        assert '[pre_compile] oops' in messages

    def test_environment(self, runner, app_dir, cache_dir, hooks_dir):
        _write_hook(hooks_dir / 'post_compile',
                    'echo "$BUILD_DIR|$CACHE_DIR|$STATICFILE_HOOK_POINT|$PWD"')
        result = runner.run_point(POST_COMPILE)[0]
        build, cache, point, cwd = result.output[0].split('|')
        assert build == str(app_dir)
        assert cache == str(cache_dir)
        assert point == 'post_compile'
        assert cwd == str(app_dir)

    def test_hook_can_modify_tree(self, runner, app_dir, hooks_dir):
        _write_hook(hooks_dir / 'pre_compile', 'echo generated > "$BUILD_DIR/generated.html"')
        runner.run_point(PRE_COMPILE)
        assert (app_dir / 'generated.html').read_text() == 'generated\n'

    def test_non_zero_exit(self, runner, hooks_dir):
        _write_hook(hooks_dir / 'pre_compile.d' / '01-ok', 'true')
        _write_hook(hooks_dir / 'pre_compile.d' / '02-bad', 'exit 3')
        _write_hook(hooks_dir / 'pre_compile.d' / '03-never', 'touch "$BUILD_DIR/ran"')

        with pytest.raises(HookFailure) as exc_info:
            runner.run_point(PRE_COMPILE)

        err = exc_info.value
        assert err.hook == 'pre_compile.d/02-bad'
        assert err.returncode == 3
        assert 'exit code 3' in err.message
        assert err.exit_code == 14
        assert not (runner.build_dir / 'ran').exists()

    def test_timeout(self, app_dir, cache_dir, hooks_dir, caplog):
        caplog.set_level(logging.INFO)
        _write_hook(hooks_dir / 'pre_compile', 'echo started\nsleep 30')
        runner = HookRunner(app_dir, cache_dir, timeout=1, environ={'PATH': '/usr/bin:/bin'})

        with pytest.raises(HookFailure) as exc_info:
            runner.run_point(PRE_COMPILE)
        assert 'timed out after 1s' in exc_info.value.message
        assert '[pre_compile] started' in caplog.text

    def test_background_child_does_not_block(self, runner, hooks_dir):
        """A child left running holds the pipe open; the group kill releases it."""
        _write_hook(hooks_dir / 'pre_compile', '(sleep 30 &)\necho done')
        runner.timeout = 2
        with pytest.raises(HookFailure):
            runner.run_point(PRE_COMPILE)

    def test_unstartable_hook(self, runner, hooks_dir):
        hook = Hook('pre_compile', hooks_dir / 'missing')
        with patch('hooks.subprocess.Popen', side_effect=FileNotFoundError(2, 'No such file')):
            with pytest.raises(HookFailure) as exc_info:
                runner.run_hook(hook, PRE_COMPILE)
        assert 'could not be started' in exc_info.value.message

    def test_process_reaped_after_timeout(self, runner, hooks_dir):
        _write_hook(hooks_dir / 'pre_compile', 'sleep 30')
        runner.timeout = 1
        spawned = []
        real_popen = subprocess.Popen

        def tracking_popen(*args, **kwargs):
            proc = real_popen(*args, **kwargs)
            spawned.append(proc)
            return proc

        with patch('hooks.subprocess.Popen', side_effect=tracking_popen):
            with pytest.raises(HookFailure):
                runner.run_point(PRE_COMPILE)

        assert spawned[0].returncode is not None
        assert spawned[0].stdout.closed

    def test_debug_markers(self, app_dir, cache_dir, caplog):
        caplog.set_level(logging.INFO)
        runner = HookRunner(app_dir, cache_dir, debug=True)
        runner.run_point(PRE_COMPILE)
        runner.run_point(POST_COMPILE)
        messages = [r.getMessage() for r in caplog.records]
        assert messages == ['HOOKS: before compile', 'HOOKS: after compile']
