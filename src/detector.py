"""Applicability check used by the platform before choosing a compiler.

Must stay cheap and side-effect free: the platform may try several
compilers against the same tree.
"""

from enum import Enum
from pathlib import Path

STATICFILE = 'Staticfile'
DETECT_TAG = 'staticfile'

# Files that mean a more specific compiler owns the tree
OTHER_COMPILER_MARKERS = (
    'package.json',
    'Gemfile',
    'requirements.txt',
    'Pipfile',
    'pyproject.toml',
    'go.mod',
    'pom.xml',
    'build.gradle',
    'composer.json',
    'Procfile',
    'mix.exs',
    'project.clj',
)
OTHER_COMPILER_GLOBS = ('*.csproj', '*.sln')

INDEX_FILES = ('index.html', 'index.htm')


class Detection(Enum):
    APPLICABLE = 'applicable'
    NOT_APPLICABLE = 'not_applicable'


def _claimed_by_other_compiler(build_dir: Path) -> bool:
    if any((build_dir / marker).exists() for marker in OTHER_COMPILER_MARKERS):
        return True
    return any(next(build_dir.glob(pattern), None) is not None for pattern in OTHER_COMPILER_GLOBS)


def detect(build_dir: Path, fallback: bool = False) -> Detection:
    """Decide whether this compiler applies to build_dir.

    Args:
        build_dir: Application source tree
        fallback: Also claim unconfigured trees that look like plain static
            sites (an index page and no marker of another compiler)
    """
    build_dir = Path(build_dir)
    if not build_dir.is_dir():
        return Detection.NOT_APPLICABLE

    if (build_dir / STATICFILE).is_file():
        return Detection.APPLICABLE

    if fallback and not _claimed_by_other_compiler(build_dir):
        if any((build_dir / name).is_file() for name in INDEX_FILES):
            return Detection.APPLICABLE

    return Detection.NOT_APPLICABLE
