"""Content root resolution.

Runs before anything touches the filesystem, so a bad root leaves the
application tree exactly as it was pushed.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from errors import InvalidRoot
from reporting.buildlog import begin_step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedRoot:
    """Configured root resolved against the application tree."""
    configured: str
    path: Path
    exists: bool
    is_directory: bool


def resolve_root(build_dir: Path, root: str = '.') -> ResolvedRoot:
    """Resolve root inside build_dir and check it is a directory.

    Raises:
        InvalidRoot: If the root escapes build_dir, does not exist, or is a file
    """
    root = root or '.'
    base = Path(build_dir).resolve()
    candidate = Path(os.path.normpath(base / root))

    begin_step(logger, f"Root folder {candidate}")

    # Symlinks inside the tree may point elsewhere; check the real target too
    real = candidate.resolve()
    for path in (candidate, real):
        if path != base and base not in path.parents:
            raise InvalidRoot(
                f"the application Staticfile specifies a root directory {root} "
                f"that is outside the application directory",
                root=root, reason='escapes',
            )

    if not candidate.exists():
        raise InvalidRoot(
            f"the application Staticfile specifies a root directory {root} that does not exist",
            root=root, reason='not_found',
        )

    if not candidate.is_dir():
        raise InvalidRoot(
            f"the application Staticfile specifies a root directory {root} "
            f"that is a plain file, but was expected to be a directory",
            root=root, reason='not_directory',
        )

    return ResolvedRoot(configured=root, path=candidate, exists=True, is_directory=True)
