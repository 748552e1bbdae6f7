"""Asset relocation into the serving directory.

Content is moved (renamed, never copied) from the resolved root into
<build>/public so that compiler inputs and other non-content files at the
application top level are never servable.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from errors import AssetRelocationError
from paths import ResolvedRoot
from reporting.buildlog import begin_step

logger = logging.getLogger(__name__)

PUBLIC_DIR = 'public'

# Compiler inputs and platform files that never become content
SKIPPED_ENTRIES = frozenset({
    'Staticfile',
    'Staticfile.auth',
    'manifest.yml',
    '.profile',
    '.profile.d',
    'stackato.yml',
    '.cloudfoundry',
    '.staticfile',
    '.deps',
})


def _should_move(name: str, host_dot_files: bool) -> bool:
    if name in SKIPPED_ENTRIES:
        return False
    if name.startswith('.') and not host_dot_files:
        return False
    return True


def relocate_assets(build_dir: Path, root: ResolvedRoot, host_dot_files: bool = False) -> Path:
    """Move the content root's entries into <build_dir>/public.

    Entries are first moved into a staging directory inside build_dir;
    the staging directory replaces public only once every move succeeded.
    A root nested inside the old public directory is moved as part of the
    staging step, so a `public/public` tree keeps its inner directory.

    Returns:
        Path to the serving directory

    Raises:
        AssetRelocationError: On any filesystem failure (moves are rolled back)
    """
    build_dir = Path(build_dir).resolve()
    public = build_dir / PUBLIC_DIR
    begin_step(logger, f"Copying project files into {PUBLIC_DIR}")

    if root.path == public:
        logger.debug(f"Root is already {public}, nothing to move")
        return public

    try:
        staging = Path(tempfile.mkdtemp(prefix='.staticfile-approot.', dir=build_dir))
    except OSError as e:
        raise AssetRelocationError(f"Could not create staging directory in {build_dir}: {e.strerror}") from e

    moved: list[tuple[Path, Path]] = []
    try:
        for entry in sorted(os.listdir(root.path)):
            source = root.path / entry
            if source == staging or not _should_move(entry, host_dot_files):
                continue
            target = staging / entry
            os.rename(source, target)
            moved.append((source, target))

        if public.exists() or public.is_symlink():
            if public.is_dir() and not public.is_symlink():
                shutil.rmtree(public)
            else:
                public.unlink()
        os.rename(staging, public)
    except OSError as e:
        _roll_back(moved, staging)
        raise AssetRelocationError(
            f"Unable to move project files into {PUBLIC_DIR}: {e.strerror or e}"
        ) from e

    logger.debug(f"Moved {len(moved)} entries into {public}")
    return public


def _roll_back(moved: list[tuple[Path, Path]], staging: Path) -> None:
    """Put moved entries back where they were and drop the staging dir."""
    for source, target in reversed(moved):
        try:
            if target.exists() or target.is_symlink():
                source.parent.mkdir(parents=True, exist_ok=True)
                os.rename(target, source)
        except OSError as e:
            logger.error(f"Could not restore {source.name}: {e.strerror or e}")
    if staging.exists():
        shutil.rmtree(staging, ignore_errors=True)
