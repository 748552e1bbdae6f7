"""Pre/post compile hooks.

Hooks are scripts run at two fixed points of a compile:
- pre_compile: before content generation (assets not yet relocated)
- post_compile: after the server configuration is written

Sources, in run order:
1. <compiler home>/hooks/<point>.d/*     (compiler-supplied)
2. <app>/.staticfile/hooks/<point>       (single app script)
3. <app>/.staticfile/hooks/<point>.d/*   (app scripts, sorted by name)

Each hook's output is captured and replayed into the build log prefixed
with the hook's name. A non-zero exit or a timeout aborts the compile.
"""

import logging
import os
import signal
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from common import is_executable
from errors import HookFailure
from reporting.buildlog import begin_step

logger = logging.getLogger(__name__)

PRE_COMPILE = 'pre_compile'
POST_COMPILE = 'post_compile'
HOOK_POINTS = (PRE_COMPILE, POST_COMPILE)

APP_HOOKS_DIR = Path('.staticfile') / 'hooks'

_DEBUG_MARKERS = {
    PRE_COMPILE: 'HOOKS: before compile',
    POST_COMPILE: 'HOOKS: after compile',
}


@dataclass(frozen=True)
class Hook:
    """A script bound to a hook point."""
    name: str
    path: Path

    def command(self) -> list[str]:
        """Executable scripts run directly; others through /bin/sh."""
        if is_executable(self.path):
            return [str(self.path)]
        return ['/bin/sh', str(self.path)]


@dataclass
class HookResult:
    """Outcome of one hook run."""
    hook: Hook
    returncode: int
    output: list[str] = field(default_factory=list)
    duration: float = 0.0


def _scripts_in(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and not p.name.startswith('.') and not p.name.endswith('~')
    )


def discover_hooks(build_dir: Path, point: str, compiler_dir: Optional[Path] = None) -> list[Hook]:
    """List hooks for a point in run order."""
    if point not in HOOK_POINTS:
        raise ValueError(f"Unknown hook point: {point}. Available: {list(HOOK_POINTS)}")

    hooks: list[Hook] = []
    if compiler_dir is not None:
        for script in _scripts_in(compiler_dir / 'hooks' / f'{point}.d'):
            hooks.append(Hook(name=f'compiler/{point}.d/{script.name}', path=script))

    app_dir = Path(build_dir) / APP_HOOKS_DIR
    single = app_dir / point
    if single.is_file():
        hooks.append(Hook(name=point, path=single))
    for script in _scripts_in(app_dir / f'{point}.d'):
        hooks.append(Hook(name=f'{point}.d/{script.name}', path=script))

    return hooks


@contextmanager
def _spawn(cmd: list[str], cwd: Path, env: dict) -> Iterator[subprocess.Popen]:
    """Start a hook process; on every exit path kill it, drain it, reap it.

    The hook runs in its own session so children it leaves behind are
    killed with it and cannot hold the output pipe open.
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    proc = subprocess.Popen(
        cmd,
        cwd=cwd,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors='replace',
        start_new_session=True,
    )
    try:
        yield proc
    finally:
        if proc.poll() is None:
            _kill_group(proc)
        if proc.stdout is not None and not proc.stdout.closed:
            proc.stdout.close()
        proc.wait()


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()


class HookRunner:
    """Runs the hooks of one compile, strictly one after another."""

    def __init__(
        self,
        build_dir: Path,
        cache_dir: Path,
        timeout: int = 300,
        environ: Optional[dict] = None,
        compiler_dir: Optional[Path] = None,
        debug: bool = False,
    ):
        self.build_dir = Path(build_dir)
        self.cache_dir = Path(cache_dir)
        self.timeout = timeout
        self.environ = dict(environ) if environ else {'PATH': os.defpath}
        self.compiler_dir = compiler_dir
        self.debug = debug

    def _env_for(self, point: str) -> dict:
        env = dict(self.environ)
        env.update({
            'BUILD_DIR': str(self.build_dir),
            'CACHE_DIR': str(self.cache_dir),
            'STATICFILE_HOOK_POINT': point,
        })
        return env

    def run_point(self, point: str) -> list[HookResult]:
        """Run every hook for point. Stops at the first failure.

        Raises:
            HookFailure: A hook exited non-zero or timed out
        """
        if self.debug:
            logger.info(_DEBUG_MARKERS[point])

        hooks = discover_hooks(self.build_dir, point, self.compiler_dir)
        if not hooks:
            logger.debug(f"No {point} hooks")
            return []

        begin_step(logger, f"Running {point} hooks")
        return [self.run_hook(hook, point) for hook in hooks]

    def run_hook(self, hook: Hook, point: str) -> HookResult:
        """Run a single hook and replay its output.

        Raises:
            HookFailure: Non-zero exit or timeout
        """
        start = time.time()
        logger.info(f"[{hook.name}] starting")

        try:
            with _spawn(hook.command(), self.build_dir, self._env_for(point)) as proc:
                try:
                    output, _ = proc.communicate(timeout=self.timeout)
                except subprocess.TimeoutExpired:
                    _kill_group(proc)
                    output, _ = proc.communicate()
                    self._replay(hook, output)
                    raise HookFailure(
                        f"Hook {hook.name} timed out after {self.timeout}s",
                        hook=hook.name, returncode=-1,
                    ) from None
        except OSError as exc:
            raise HookFailure(
                f"Hook {hook.name} could not be started: {exc.strerror or exc}",
                hook=hook.name, returncode=-1,
            ) from exc

        lines = self._replay(hook, output)
        result = HookResult(hook=hook, returncode=proc.returncode, output=lines,
                            duration=time.time() - start)

        if proc.returncode != 0:
            raise HookFailure(
                f"Hook {hook.name} failed with exit code {proc.returncode}",
                hook=hook.name, returncode=proc.returncode,
            )

        logger.info(f"[{hook.name}] completed in {result.duration:.1f}s")
        return result

    def _replay(self, hook: Hook, output: Optional[str]) -> list[str]:
        lines = (output or '').splitlines()
        for line in lines:
            logger.info(f"[{hook.name}] {line}")
        return lines
