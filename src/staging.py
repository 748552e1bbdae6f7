"""Staging orchestration.

Runs one compile as a fixed sequence of stages:

    INIT -> DETECTING -> PARSING -> RESOLVING_PATHS -> RUNNING_PRE_HOOKS
         -> INSTALLING_SERVER -> RELOCATING_ASSETS -> GENERATING
         -> RUNNING_POST_HOOKS -> COMPOSING -> DONE

The first failing stage moves the run to FAILED and fixes the exit code;
nothing is retried. Stages share state through StagingContext.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from assets import relocate_assets
from config import BuildpackManifest, CompilerSettings, load_buildpack_manifest
from credentials import Credentials, load_credentials
from dependencies import InstalledServer, install_server
from detector import Detection, detect
from errors import EXIT_INTERNAL, MissingConfiguration, StagingError
from generator import GeneratedConfig, GeneratorInput, WrittenConfig, generate, write_generated
from hooks import POST_COMPILE, PRE_COMPILE, HookRunner
from launch import LaunchComposer, LaunchPlan
from paths import ResolvedRoot, resolve_root
from reporting.buildlog import OutcomeHandler, begin_step
from reporting.outcome import BuildOutcome
from staticfile import ParseResult, announce_features, load_staticfile

logger = logging.getLogger(__name__)


class StagingState(Enum):
    INIT = 'init'
    DETECTING = 'detecting'
    PARSING = 'parsing'
    RESOLVING_PATHS = 'resolving_paths'
    RUNNING_PRE_HOOKS = 'running_pre_hooks'
    INSTALLING_SERVER = 'installing_server'
    RELOCATING_ASSETS = 'relocating_assets'
    GENERATING = 'generating'
    RUNNING_POST_HOOKS = 'running_post_hooks'
    COMPOSING = 'composing'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class StagingContext:
    """Values produced by earlier stages for later ones."""
    build_dir: Path
    cache_dir: Path
    manifest: Optional[BuildpackManifest] = None
    parsed: Optional[ParseResult] = None
    credentials: Optional[Credentials] = None
    root: Optional[ResolvedRoot] = None
    override_dir_present: bool = False
    server: Optional[InstalledServer] = None
    public_dir: Optional[Path] = None
    generated: Optional[GeneratedConfig] = None
    written: Optional[WrittenConfig] = None
    launch: Optional[LaunchPlan] = None


Stage = tuple[StagingState, Callable[[], None], str]


class StagingOrchestrator:
    """Coordinates one compile of one application tree."""

    def __init__(
        self,
        build_dir: Path,
        cache_dir: Path,
        settings: CompilerSettings,
        manifest: Optional[BuildpackManifest] = None,
    ):
        self.settings = settings
        self.context = StagingContext(
            build_dir=Path(build_dir).resolve(),
            cache_dir=Path(cache_dir),
            manifest=manifest,
        )
        self.state = StagingState.INIT
        self.outcome = BuildOutcome()
        self.hooks = HookRunner(
            self.context.build_dir,
            self.context.cache_dir,
            timeout=settings.hook_timeout,
            environ=settings.environ,
            compiler_dir=settings.buildpack_dir,
            debug=settings.debug,
        )

    def stages(self) -> list[Stage]:
        return [
            (StagingState.INIT, self._init, "Check compiler and execution environment"),
            (StagingState.DETECTING, self._detect, "Confirm the application is static content"),
            (StagingState.PARSING, self._parse, "Read Staticfile and credentials"),
            (StagingState.RESOLVING_PATHS, self._resolve_paths, "Validate the content root"),
            (StagingState.RUNNING_PRE_HOOKS, self._pre_hooks, "Run pre-compile hooks"),
            (StagingState.INSTALLING_SERVER, self._install_server, "Install the server runtime"),
            (StagingState.RELOCATING_ASSETS, self._relocate, "Move content into the serving directory"),
            (StagingState.GENERATING, self._generate, "Generate server configuration"),
            (StagingState.RUNNING_POST_HOOKS, self._post_hooks, "Run post-compile hooks"),
            (StagingState.COMPOSING, self._compose, "Write launch scripts"),
        ]

    def run(self) -> BuildOutcome:
        """Run every stage until done or the first failure."""
        handler = OutcomeHandler(self.outcome)
        root_logger = logging.getLogger()
        saved_level = root_logger.level
        # The outcome records INFO and above whatever the console verbosity
        if root_logger.getEffectiveLevel() > logging.INFO:
            root_logger.setLevel(logging.INFO)
        root_logger.addHandler(handler)
        self.outcome.start()
        start_time = time.time()

        try:
            for state, action, description in self.stages():
                self.state = state
                logger.debug(f"Entering stage: {state.value} - {description}")
                stage_start = time.time()
                try:
                    action()
                except StagingError as e:
                    duration = time.time() - stage_start
                    logger.error(e.message)
                    self.outcome.fail_stage(state.value, description, e.kind, e.message,
                                            e.exit_code, duration)
                    self.state = StagingState.FAILED
                    break
                except Exception as e:
                    duration = time.time() - stage_start
                    logger.exception(f"Stage {state.value} raised exception")
                    self.outcome.fail_stage(state.value, description, type(e).__name__, str(e),
                                            EXIT_INTERNAL, duration)
                    self.state = StagingState.FAILED
                    break
                self.outcome.pass_stage(state.value, description, duration=time.time() - stage_start)
            else:
                self.state = StagingState.DONE
                logger.debug(f"Compile completed in {time.time() - start_time:.1f}s")
        finally:
            root_logger.removeHandler(handler)
            root_logger.setLevel(saved_level)

        self.outcome.finish(self.state.value)
        return self.outcome

    # Stages

    def _init(self) -> None:
        ctx = self.context
        if ctx.manifest is None:
            ctx.manifest = load_buildpack_manifest(self.settings)
        begin_step(logger, f"{ctx.manifest.display_name} Buildpack version {ctx.manifest.version}")
        ctx.manifest.check_stack_support(self.settings.stack)

    def _detect(self) -> None:
        result = detect(self.context.build_dir, fallback=not self.settings.strict)
        if result is Detection.NOT_APPLICABLE and self.settings.strict:
            raise MissingConfiguration(
                "missing configuration file: Staticfile not found in application directory"
            )
        logger.debug(f"Detection: {result.value}")

    def _parse(self) -> None:
        ctx = self.context
        ctx.parsed = load_staticfile(ctx.build_dir, strict=self.settings.strict,
                                     force_https=self.settings.force_https)
        if not ctx.parsed.found:
            logger.info("No Staticfile found; serving with default settings")

        announce_features(ctx.parsed.config)
        ctx.credentials = load_credentials(ctx.build_dir)
        ctx.parsed.config.basic_auth_enabled = ctx.credentials is not None

        for warning in ctx.parsed.warnings:
            logger.warning(warning)

    def _resolve_paths(self) -> None:
        ctx = self.context
        ctx.root = resolve_root(ctx.build_dir, ctx.parsed.config.root)
        # Checked before relocation can move it
        ctx.override_dir_present = (ctx.build_dir / 'nginx' / 'conf').is_dir()

    def _pre_hooks(self) -> None:
        self.hooks.run_point(PRE_COMPILE)

    def _install_server(self) -> None:
        ctx = self.context
        ctx.server = install_server(ctx.manifest, self.settings, ctx.build_dir, ctx.cache_dir)

    def _relocate(self) -> None:
        ctx = self.context
        ctx.public_dir = relocate_assets(ctx.build_dir, ctx.root,
                                         host_dot_files=ctx.parsed.config.host_dot_files)

    def _generate(self) -> None:
        ctx = self.context
        ctx.generated = generate(GeneratorInput(
            root=ctx.root,
            config=ctx.parsed.config,
            credentials=ctx.credentials,
            override_dir_present=ctx.override_dir_present,
        ))
        for warning in ctx.generated.warnings:
            logger.warning(warning)
        logger.debug(f"Enabled features: {', '.join(ctx.generated.features) or 'none'}")
        ctx.written = write_generated(ctx.build_dir, ctx.generated, ctx.credentials, ctx.public_dir)

    def _post_hooks(self) -> None:
        self.hooks.run_point(POST_COMPILE)

    def _compose(self) -> None:
        ctx = self.context
        composer = LaunchComposer(ctx.build_dir, debug=self.settings.debug)
        ctx.launch = composer.compose(placeholders=ctx.generated.placeholders)
