"""Compiler configuration.

Two sources are read here and nowhere else:
- the process environment, captured once into CompilerSettings at CLI start
  and threaded through the orchestrator
- the compiler's own manifest.yml (version, supported stacks, server
  dependency), parsed into BuildpackManifest

Inner components receive these objects; they never consult os.environ.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import yaml

from errors import UnsupportedEnvironment

DEFAULT_HOOK_TIMEOUT = 300

_TRUTHY_ENV = {'1', 'true', 'yes', 'on', 'enabled'}


class ConfigError(Exception):
    """Configuration error."""


def get_base_dir() -> Path:
    """Get the compiler home directory (repository root)."""
    return Path(__file__).parent.parent  # src/ -> staticfile-compiler/


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, '').strip().lower() in _TRUTHY_ENV


def _proxies_from_env(environ: Mapping[str, str]) -> dict:
    """Collect proxy settings, lower-case names taking priority."""
    proxies = {}
    for scheme in ('http', 'https', 'no'):
        value = environ.get(f'{scheme}_proxy') or environ.get(f'{scheme.upper()}_PROXY')
        if value:
            proxies[scheme] = value
    return proxies


@dataclass
class CompilerSettings:
    """Explicit runtime toggles for one compile invocation.

    Attributes:
        stack: Execution environment identifier (CF_STACK)
        debug: Emit extra diagnostic lines (BP_DEBUG)
        force_https: External HTTPS-enforcement signal (FORCE_HTTPS)
        strict: Missing Staticfile is an error rather than fallback mode
        hook_timeout: Seconds a single hook may run before it is killed
        proxies: Proxy addresses for dependency downloads, keyed by scheme
        buildpack_dir: Compiler home holding manifest.yml and compiler hooks
        environ: Environment snapshot passed on to hook subprocesses
    """
    stack: str = ''
    debug: bool = False
    force_https: bool = False
    strict: bool = False
    hook_timeout: int = DEFAULT_HOOK_TIMEOUT
    proxies: dict = field(default_factory=dict)
    buildpack_dir: Path = field(default_factory=get_base_dir)
    # Snapshot handed to hook subprocesses
    environ: dict = field(default_factory=dict, repr=False)

    def __post_init__(self):
        if isinstance(self.buildpack_dir, str):
            self.buildpack_dir = Path(self.buildpack_dir)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'CompilerSettings':
        """Capture settings from the environment (defaults to os.environ)."""
        if environ is None:
            environ = os.environ

        timeout_raw = environ.get('STATICFILE_HOOK_TIMEOUT', '')
        try:
            hook_timeout = int(timeout_raw) if timeout_raw else DEFAULT_HOOK_TIMEOUT
        except ValueError as exc:
            raise ConfigError(
                f"STATICFILE_HOOK_TIMEOUT must be an integer number of seconds, got '{timeout_raw}'"
            ) from exc
        if hook_timeout <= 0:
            raise ConfigError("STATICFILE_HOOK_TIMEOUT must be positive")

        buildpack_dir = environ.get('BUILDPACK_DIR')
        return cls(
            stack=environ.get('CF_STACK', ''),
            debug=bool(environ.get('BP_DEBUG')),
            force_https=_env_flag(environ, 'FORCE_HTTPS'),
            strict=_env_flag(environ, 'STATICFILE_STRICT'),
            hook_timeout=hook_timeout,
            proxies=_proxies_from_env(environ),
            buildpack_dir=Path(buildpack_dir) if buildpack_dir else get_base_dir(),
            environ=dict(environ),
        )


@dataclass
class Dependency:
    """A binary the compiler can install (only nginx today)."""
    name: str
    version: str
    uri: str = ''
    sha256: str = ''
    cf_stacks: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'Dependency':
        """Create Dependency from a manifest entry."""
        return cls(
            name=str(data['name']),
            version=str(data['version']),
            uri=data.get('uri', '') or '',
            sha256=data.get('sha256', '') or '',
            cf_stacks=list(data.get('cf_stacks') or []),
        )


@dataclass
class BuildpackManifest:
    """Compiler manifest (manifest.yml at the compiler home)."""
    language: str = 'staticfile'
    version: str = 'dev'
    stacks: list = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    default_versions: dict = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.language.title()

    @classmethod
    def load(cls, path: Path) -> 'BuildpackManifest':
        """Load manifest.yml.

        Raises:
            ConfigError: If the file is missing or not a mapping
        """
        if not path.exists():
            raise ConfigError(f"Compiler manifest not found: {path}")
        try:
            with open(path, encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid compiler manifest {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid compiler manifest {path}: expected a mapping")

        try:
            dependencies = [Dependency.from_dict(d) for d in data.get('dependencies') or []]
        except (KeyError, TypeError) as exc:
            raise ConfigError(f"Invalid dependency entry in {path}: {exc}") from exc

        default_versions = {}
        for entry in data.get('default_versions') or []:
            if isinstance(entry, dict) and 'name' in entry and 'version' in entry:
                default_versions[str(entry['name'])] = str(entry['version'])

        return cls(
            language=str(data.get('language', 'staticfile')),
            version=str(data.get('version', 'dev')),
            stacks=[str(s) for s in data.get('stacks') or []],
            dependencies=dependencies,
            default_versions=default_versions,
        )

    def check_stack_support(self, stack: str) -> None:
        """Fail fast when the execution environment is not supported.

        An empty stack (local runs) or a manifest without a stack list is
        accepted.

        Raises:
            UnsupportedEnvironment: If stack is not listed
        """
        if not stack or not self.stacks:
            return
        if stack not in self.stacks:
            raise UnsupportedEnvironment(
                f"Stack not supported by buildpack: required stack {stack} "
                f"is not supported by this buildpack (supported: {', '.join(self.stacks)})"
            )

    def default_dependency(self, name: str, stack: str = '') -> Optional[Dependency]:
        """Return the default version of a dependency for the stack, if declared."""
        candidates = [d for d in self.dependencies if d.name == name]
        if stack:
            candidates = [d for d in candidates if not d.cf_stacks or stack in d.cf_stacks]
        if not candidates:
            return None
        wanted = self.default_versions.get(name)
        if wanted:
            for dep in candidates:
                if dep.version == wanted:
                    return dep
        return candidates[-1]


def load_buildpack_manifest(settings: CompilerSettings) -> BuildpackManifest:
    """Load the manifest from the compiler home named in settings."""
    return BuildpackManifest.load(settings.buildpack_dir / 'manifest.yml')


def read_app_start_command(build_dir: Path) -> Optional[str]:
    """Read a custom start command from the application's manifest.yml.

    Looks at applications[0].command first, then a top-level command key.
    Returns None when absent or when the file cannot be parsed.
    """
    manifest_file = build_dir / 'manifest.yml'
    if not manifest_file.is_file():
        return None
    try:
        with open(manifest_file, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError:
        return None
    if not isinstance(data, dict):
        return None

    apps = data.get('applications')
    if isinstance(apps, list) and apps and isinstance(apps[0], dict):
        if command := apps[0].get('command'):
            return str(command).strip() or None
    if command := data.get('command'):
        return str(command).strip() or None
    return None
