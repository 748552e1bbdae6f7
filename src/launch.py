"""Launch instruction composition.

The compile leaves two scripts behind:
- .profile.d/staticfile.sh, sourced by the platform before start; renders
  nginx.conf from its template with the runtime PORT and APP_ROOT
- boot.sh, the default start command; execs nginx against that config
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from common import atomic_write_text
from config import read_app_start_command
from errors import OutputWriteError
from dependencies import DEPS_DIR, SERVER_DEPENDENCY
from generator.contributors import EXPOSED_PLACEHOLDERS, LAUNCH_PLACEHOLDERS
from generator.output import CONF_DIR, CONF_NAME, TEMPLATE_NAME
from reporting.buildlog import begin_step

logger = logging.getLogger(__name__)

PROFILE_SCRIPT = Path('.profile.d') / 'staticfile.sh'
BOOT_SCRIPT = 'boot.sh'
DEFAULT_START_COMMAND = '$HOME/boot.sh'

_SERVER_HOME = f'$APP_ROOT/{DEPS_DIR}/{SERVER_DEPENDENCY}'
_CONF = f'$APP_ROOT/{CONF_DIR.as_posix()}'

# Escapes single quotes so exposed values fit a single-quoted nginx string
_ESCAPE_ASSIGNMENT = r'''NAME="$(printf '%s' "${NAME:-}" | sed "s/'/\\\\'/g")"'''

SERVER_COMMAND = f"nginx -p $APP_ROOT/nginx -c {_CONF}/{CONF_NAME}"

BOOT_SH = f"""\
#!/bin/sh
set -e
exec {SERVER_COMMAND}
"""


@dataclass
class LaunchPlan:
    """Where the launch scripts went and what the platform should run."""
    command: str
    custom: bool
    profile_script: Path
    boot_script: Path


def render_profile_script(placeholders: tuple[str, ...] = LAUNCH_PLACEHOLDERS) -> str:
    """Shell fragment that renders nginx.conf at instance start."""
    shell_format = ' '.join(f'${{{name}}}' for name in placeholders)
    exposed = [name for name in placeholders if name in EXPOSED_PLACEHOLDERS]
    prefix = ''.join(_ESCAPE_ASSIGNMENT.replace('NAME', name) + ' \\\n  ' for name in exposed)

    return (
        "export APP_ROOT=$HOME\n"
        f"export LD_LIBRARY_PATH={_SERVER_HOME}/lib:$LD_LIBRARY_PATH\n"
        f"export PATH={_SERVER_HOME}/sbin:$PATH\n"
        "\n"
        f"{prefix}envsubst '{shell_format}' \\\n"
        f"  < {_CONF}/{TEMPLATE_NAME} > {_CONF}/{CONF_NAME}\n"
    )


class LaunchComposer:
    """Writes launch scripts and decides the start command."""

    def __init__(self, build_dir: Path, debug: bool = False):
        self.build_dir = Path(build_dir)
        self.debug = debug

    def compose(self, placeholders: tuple[str, ...] = LAUNCH_PLACEHOLDERS,
                custom_command: Optional[str] = None) -> LaunchPlan:
        """Write the scripts and return the launch plan.

        A custom start command (argument, or the app's manifest.yml)
        takes precedence over boot.sh; the scripts are still written so
        a custom command can call boot.sh itself.

        Raises:
            OutputWriteError: If a script cannot be written
        """
        begin_step(logger, "Writing launch scripts")
        profile = self.build_dir / PROFILE_SCRIPT
        boot = self.build_dir / BOOT_SCRIPT

        try:
            atomic_write_text(profile, render_profile_script(placeholders), mode=0o755)
            atomic_write_text(boot, BOOT_SH, mode=0o755)
            (self.build_dir / 'nginx' / 'logs').mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputWriteError(f"Unable to write launch scripts in {self.build_dir}: {e.strerror or e}") from None

        if custom_command is None:
            custom_command = read_app_start_command(self.build_dir)

        if custom_command:
            logger.info(f"A custom start command was supplied and takes precedence: {custom_command}")
            plan = LaunchPlan(command=custom_command, custom=True, profile_script=profile, boot_script=boot)
        else:
            plan = LaunchPlan(command=DEFAULT_START_COMMAND, custom=False, profile_script=profile, boot_script=boot)

        if self.debug:
            logger.info(f"Launch command: {plan.command}")
            logger.info(f"Server command: {SERVER_COMMAND}")
        return plan


def release_metadata(build_dir: Path) -> str:
    """YAML the platform reads to learn the default web process."""
    command = read_app_start_command(Path(build_dir)) or DEFAULT_START_COMMAND
    return yaml.safe_dump({'default_process_types': {'web': command}}, default_flow_style=False)
